"""Disk usage analysis: parallel directory walking, text output, JSON export and import."""

__version__ = "5.0.0"