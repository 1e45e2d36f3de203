"""Data structures shared across the report pipeline, settings and Discord adapters."""
