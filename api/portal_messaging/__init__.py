"""Conversation aggregation for the employment portal messaging pages."""

__version__ = "0.1.0"
