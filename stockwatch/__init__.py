"""Stockwatch — daily inventory alerts for store owners over Telegram."""

__version__ = "1.0.0"
