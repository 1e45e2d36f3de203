"""Reportcord: member-driven message reporting with AI adjudication for Discord."""
