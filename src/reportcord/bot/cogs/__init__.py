"""Py-cord cogs: report commands, report configuration, and the message listener."""
