"""Kohi - Messenger page bot that relays chat commands to pluggable handlers."""

__version__ = "1.0.0"
