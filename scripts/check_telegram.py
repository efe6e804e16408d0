"""Stockwatch — Telegram Live Check.

Sends real messages to one chat to verify the bot token, HTML
formatting, message splitting and delivery outcome reporting.

Requires TELEGRAM_BOT_TOKEN in .env and a chat id that has started the bot.

Run: python scripts/check_telegram.py <chat_id>
"""

from __future__ import annotations

import asyncio
import sys
from datetime import date, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from stockwatch.alerts.classifier import classify_inventory, reference_today
from stockwatch.config import load_config
from stockwatch.database.models import InventoryItem
from stockwatch.notifier.formatters import format_inventory_digest, format_test_alert
from stockwatch.notifier.telegram_bot import TelegramGateway
from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

_passed = 0
_failed = 0


def check(label: str, condition: bool) -> None:
    """Track pass/fail."""
    global _passed, _failed
    if condition:
        _passed += 1
        logger.info("  ✅ %s", label)
    else:
        _failed += 1
        logger.error("  ❌ FAILED: %s", label)


def _sample_inventory(today: date) -> list[InventoryItem]:
    items = [
        InventoryItem(None, "demo", "Milk 1L", 2, (today + timedelta(days=1)).isoformat()),
        InventoryItem(None, "demo", "Bread", 0, (today - timedelta(days=2)).isoformat()),
        InventoryItem(None, "demo", "Paneer <200g> & more", 12, today.isoformat()),
        InventoryItem(None, "demo", "Curd", 8, (today + timedelta(days=3)).isoformat()),
    ]
    # enough rows to exercise the "...and N more" line
    items.extend(
        InventoryItem(None, "demo", f"Biscuit pack {n}", n % 4, None) for n in range(14)
    )
    return items


async def run_check(chat_id: str) -> None:
    """Run all live checks against one chat."""
    logger.info("═══ Stockwatch — Telegram Live Check ═══")

    config = load_config()
    gateway = TelegramGateway(config.telegram)

    logger.info("═══ Check 1: Bot Connection ═══")
    connected = await gateway.initialize()
    check("Bot connected", connected)
    if not connected:
        sys.exit(1)

    logger.info("═══ Check 2: Test Alert ═══")
    result = await gateway.send_message(chat_id, format_test_alert("Demo Store", config.dashboard_url))
    check("Test alert delivered", result.success)
    await asyncio.sleep(1)

    logger.info("═══ Check 3: Inventory Digest ═══")
    today = reference_today(config.schedule.timezone)
    classified = classify_inventory(_sample_inventory(today), 7, 5, today)
    text = format_inventory_digest("Demo Store", today, classified, config.dashboard_url)
    check("Digest composed", text is not None)
    result = await gateway.send_message(chat_id, text)
    check("Digest delivered", result.success)
    await asyncio.sleep(1)

    logger.info("═══ Check 4: Long Message Split ═══")
    long_text = "\n".join(f"Line {n}: " + "x" * 80 for n in range(80))
    result = await gateway.send_message(chat_id, long_text)
    check("Long message delivered in parts", result.success)

    logger.info("═══ Check 5: Unknown Chat ═══")
    result = await gateway.send_message("1", "ping")
    check("Unknown chat reported as failure", not result.success)
    logger.info("    permanent=%s error=%s", result.permanent_failure, result.error)

    await gateway.shutdown()

    logger.info("═══ Results: %d passed, %d failed ═══", _passed, _failed)
    if _failed:
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/check_telegram.py <chat_id>")
        sys.exit(2)
    asyncio.run(run_check(sys.argv[1]))
