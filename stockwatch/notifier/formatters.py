"""Stockwatch — Telegram Message Formatters.

Builds the daily inventory digest and the bot's fixed replies using
Telegram's HTML parse mode. Only &, < and > need escaping in HTML, so
store and item names are passed through _name(), which clips them to
MAX_NAME_LENGTH and escapes them. Everything else is literal.

Layout rules for the digest:
  - One item per line, short enough not to wrap on a phone
  - Sections in a fixed order: expired, expiring soon, low stock
  - At most MAX_ITEMS_PER_SECTION lines per section, then a "...and N more"
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from stockwatch.database.models import (
    AlertSettings,
    ClassificationResult,
    ExpiredItem,
    LowStockItem,
    NearExpiryItem,
)
from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

MAX_ITEMS_PER_SECTION = 10
MAX_NAME_LENGTH = 80
DEFAULT_DASHBOARD_URL = "https://vyaparcopilot.web.app"

# Fixed table so the output never depends on the process locale
_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def _e(text: str) -> str:
    """Escape HTML special characters for Telegram.

    Args:
        text: Raw text to escape.

    Returns:
        HTML-safe text.
    """
    if not text:
        return ""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _name(name: str) -> str:
    """Escape a store or item name, clipped to MAX_NAME_LENGTH characters."""
    text = str(name or "")
    if len(text) > MAX_NAME_LENGTH:
        text = text[:MAX_NAME_LENGTH - 1].rstrip() + "…"
    return _e(text)


def _link(text: str, url: str) -> str:
    """Build an HTML link with escaped text and URL."""
    safe_url = url.replace("&", "&amp;").replace('"', "&quot;")
    return f'<a href="{safe_url}">{_e(text)}</a>'


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def format_day_month(day: date) -> str:
    """Format a date as '16 Oct'."""
    return f"{day.day} {_MONTHS[day.month - 1]}"


def format_full_date(day: date) -> str:
    """Format a date as '16 Oct 2026'."""
    return f"{format_day_month(day)} {day.year}"


def format_timestamp(value: Optional[str], timezone_name: str) -> str:
    """Format a stored ISO timestamp as '16 Oct 2026, 08:00' in the given zone.

    Naive values are read as UTC. A value that is not ISO-8601 is shown
    as stored.
    """
    if not value:
        return "Never"
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        return value
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(ZoneInfo(timezone_name))
    return f"{format_full_date(local.date())}, {local:%H:%M}"


# ═══════════════════════════════════════════════════════════
# Digest Sections
# ═══════════════════════════════════════════════════════════


def _expired_line(item: ExpiredItem) -> str:
    if item.days_expired == 0:
        text = "Expired today"
    else:
        text = f"Expired {_plural(item.days_expired, 'day')} ago"
    return f"🔴 {_name(item.name)} - {text}"


def _near_expiry_line(item: NearExpiryItem) -> str:
    if item.days_until_expiry == 1:
        marker = "🔴"
    elif item.days_until_expiry <= 3:
        marker = "🟠"
    else:
        marker = "🟡"
    return (
        f"{marker} {_name(item.name)} - Expires in "
        f"{_plural(item.days_until_expiry, 'day')} ({format_day_month(item.expiry_date)})"
    )


def _low_stock_line(item: LowStockItem) -> str:
    if item.quantity == 0:
        return f"🔴 {_name(item.name)} - Out of stock"
    return f"⚠️ {_name(item.name)} - Only {item.quantity} left"


def _section(title: str, entries: list, render) -> list[str]:
    """Render one category: header, up to MAX_ITEMS_PER_SECTION lines, overflow."""
    lines = [f"<b>{title} ({len(entries)}):</b>"]
    lines.extend(render(entry) for entry in entries[:MAX_ITEMS_PER_SECTION])
    remaining = len(entries) - MAX_ITEMS_PER_SECTION
    if remaining > 0:
        lines.append(f"<i>...and {remaining} more items</i>")
    lines.append("")
    return lines


def format_inventory_digest(
    store_name: str,
    run_date: date,
    result: ClassificationResult,
    dashboard_url: str = DEFAULT_DASHBOARD_URL,
) -> Optional[str]:
    """Format the daily inventory alert for one store.

    Output depends only on the arguments; the same inputs always give
    the same text.

    Args:
        store_name: Store display name.
        run_date: The run's reference day, shown in the header.
        result: Classified inventory.
        dashboard_url: Management interface linked from the footer.

    Returns:
        HTML message text, or None when there is nothing to report.
    """
    if result.is_empty:
        return None

    lines = [
        "🚨 <b>Daily Inventory Alert</b>",
        f"{_name(store_name)} - {format_full_date(run_date)}",
        "",
    ]

    if result.expired:
        lines.extend(_section("❌ Expired Items", result.expired, _expired_line))
    if result.near_expiry:
        lines.extend(_section("📅 Expiring Soon", result.near_expiry, _near_expiry_line))
    if result.low_stock:
        lines.extend(_section("📦 Low Stock", result.low_stock, _low_stock_line))

    lines.append(f"👉 {_link('Open Dashboard', dashboard_url)}")
    return "\n".join(lines)


# ═══════════════════════════════════════════════════════════
# Bot Replies
# ═══════════════════════════════════════════════════════════


def format_test_alert(store_name: str, dashboard_url: str = DEFAULT_DASHBOARD_URL) -> str:
    """Format the on-demand test message."""
    return "\n".join([
        "🧪 <b>Test Alert</b>",
        "",
        f"Your Telegram alerts for <b>{_name(store_name)}</b> are working.",
        "Daily inventory alerts will arrive here every morning.",
        "",
        f"👉 {_link('Open Dashboard', dashboard_url)}",
    ])


def format_welcome(dashboard_url: str = DEFAULT_DASHBOARD_URL) -> str:
    """Reply to /start without a store link."""
    return "\n".join([
        "👋 <b>Welcome to Vyapari Copilot Bot!</b>",
        "",
        "To connect your store, please use the link provided in your dashboard.",
        "",
        f"Need help? Visit: {_e(dashboard_url)}",
    ])


def format_subscribed(
    store_name: str,
    settings: AlertSettings,
    schedule_text: str,
    dashboard_url: str = DEFAULT_DASHBOARD_URL,
) -> str:
    """Confirmation sent after a successful /start store_<id>."""
    return "\n".join([
        "✅ <b>Successfully Connected!</b>",
        "",
        f"You're now subscribed to alerts for <b>{_name(store_name)}</b>.",
        "",
        "📅 <b>You'll receive daily alerts for:</b>",
        f"• Items expiring within {_plural(settings.expiry_warning_days, 'day')}",
        "• Expired products",
        f"• Low stock items (≤{settings.low_stock_threshold} units)",
        "",
        "🕐 <b>Alert Schedule:</b>",
        _e(schedule_text),
        "",
        "<b>Available Commands:</b>",
        "/status - Check connection status",
        "/test - Send a test alert",
        "/help - Show help information",
        "",
        f"👉 Manage settings: {_e(dashboard_url)}",
    ])


def format_help(schedule_text: str, dashboard_url: str = DEFAULT_DASHBOARD_URL) -> str:
    """Reply to /help."""
    return "\n".join([
        "📚 <b>Vyapari Copilot Bot - Help</b>",
        "",
        "<b>Available Commands:</b>",
        "/start - Connect your store",
        "/status - Check connection and settings",
        "/test - Send a test alert",
        "/help - Show this help message",
        "",
        "<b>What You'll Receive:</b>",
        "📅 <b>Expiry Warnings</b> - Items expiring soon",
        "🔴 <b>Expired Items</b> - Products past expiry",
        "📦 <b>Low Stock Alerts</b> - Items running low",
        "",
        "<b>Alert Schedule:</b>",
        f"🕐 {_e(schedule_text)}",
        "",
        f"Need more help? Visit: {_e(dashboard_url)}",
    ])


def format_subscriber_status(
    store_name: str,
    settings: AlertSettings,
    last_alert: Optional[str],
    schedule_text: str,
    timezone_name: str,
    store_count: int = 1,
    dashboard_url: str = DEFAULT_DASHBOARD_URL,
) -> str:
    """Reply to /status for a connected user.

    Args:
        store_name: First store the user is subscribed to.
        settings: That store's effective settings.
        last_alert: When the last scheduled alert reached this chat (stored
            ISO timestamp), if ever.
        schedule_text: Human-readable run time.
        timezone_name: Zone the last alert time is shown in.
        store_count: Number of stores the user is subscribed to.
        dashboard_url: Management interface.
    """
    lines = [
        "✅ <b>Connection Status</b>",
        "",
        f"<b>Store:</b> {_name(store_name)}",
        "<b>Status:</b> Connected",
        "",
        "<b>Alert Settings:</b>",
        f"• Low stock threshold: {settings.low_stock_threshold} units",
        f"• Expiry warning: {settings.expiry_warning_days} days in advance",
        f"• Expiry alerts: {'on' if settings.enable_expiry_alerts else 'off'}",
        f"• Low stock alerts: {'on' if settings.enable_low_stock_alerts else 'off'}",
        f"• Daily alert time: {_e(schedule_text)}",
        "",
        f"<b>Last Alert:</b> {_e(format_timestamp(last_alert, timezone_name))}",
    ]
    if store_count > 1:
        lines.extend(["", f"<b>Note:</b> You're connected to {store_count} stores"])
    lines.extend(["", f"👉 Change settings: {_e(dashboard_url)}"])
    return "\n".join(lines)


def format_not_connected() -> str:
    """Reply to /status for a user with no subscriptions."""
    return "\n".join([
        "⚠️ <b>Not Connected</b>",
        "",
        "You're not connected to any store yet.",
        "",
        "Use the /start link from your dashboard to connect.",
    ])


def format_unknown_command() -> str:
    return "\n".join([
        "❓ <b>Unknown Command</b>",
        "",
        "I don't recognize that command.",
        "",
        "Type /help to see available commands.",
    ])


def format_error(title: str, detail: str) -> str:
    """Short error reply for failed commands."""
    return f"❌ <b>{_e(title)}</b>\n\n{_e(detail)}"
