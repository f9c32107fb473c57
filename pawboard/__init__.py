"""Pawboard: lost and found pet listings with user accounts."""

__version__ = "1.0.0"
