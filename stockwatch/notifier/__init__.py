"""Stockwatch — Notifier Package.

Telegram delivery of inventory alerts.
Components:
  - formatters: HTML message builders (digest, test alert, bot replies)
  - telegram_bot: Telegram gateway reporting delivery outcomes
  - dispatcher: per-subscriber delivery with subscriber bookkeeping
  - commands: /start, /help, /status, /test bot commands
"""

from stockwatch.notifier.formatters import format_inventory_digest, format_test_alert
from stockwatch.notifier.telegram_bot import MessageGateway, TelegramGateway
from stockwatch.notifier.dispatcher import AlertDispatcher

__all__ = [
    "format_inventory_digest",
    "format_test_alert",
    "MessageGateway",
    "TelegramGateway",
    "AlertDispatcher",
]
