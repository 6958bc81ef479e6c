"""Shared dice table: one authoritative physics roll, many observers."""

__version__ = "0.1.0"
