"""Maintenance Assistant: grounded answers over equipment service manuals."""

__version__ = "0.1.0"
