"""Holloway: a terminal chat assistant with local tools."""

__version__ = "0.1.0"
