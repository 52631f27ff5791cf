"""Linkhub: short links, deeplinks and QR codes."""

__version__ = "0.1.0"
