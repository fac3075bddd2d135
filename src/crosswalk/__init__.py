"""Crosswalk: real-time simulation core for a street-corner protest session."""

__version__ = "0.1.0"
