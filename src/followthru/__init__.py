"""Followthru - follow-up action generation for relationship management."""

__version__ = "0.1.0"
