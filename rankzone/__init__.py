"""Ranked crypto-futures watchlists with cache and recycle zones."""

__version__ = "0.1.0"
