"""Persistent report settings layered as global defaults plus per-guild overrides."""
