"""Chatlens - relationship and behavior statistics for chat message logs."""

__version__ = "1.0.0"
