"""Navi companion core: long-term memory consolidation and local-first backend sync."""

__version__ = "0.1.0"
