"""Stockwatch — Inventory Classifier.

Sorts a store's inventory snapshot into the three alert categories:
expired, near expiry and low stock. The two criteria are independent,
so one item can be both low on stock and close to expiry.

The classifier is pure: it only looks at the items, the thresholds and
the reference day it is given. A malformed item is logged and left out
of the category it cannot be judged for; it never fails the batch.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from stockwatch.database.models import (
    AlertSettings,
    ClassificationResult,
    ExpiredItem,
    InventoryItem,
    LowStockItem,
    NearExpiryItem,
)
from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEZONE = "Asia/Kolkata"


def reference_today(
    timezone_name: str = DEFAULT_TIMEZONE, now: Optional[datetime] = None,
) -> date:
    """Return the current calendar day in the reference timezone.

    Computed once per run so every store is judged against the same day.

    Args:
        timezone_name: IANA timezone of the business day.
        now: Override for the current instant (naive values are taken as UTC).

    Returns:
        Today's date in that timezone.
    """
    tz = ZoneInfo(timezone_name)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        now = now.replace(tzinfo=ZoneInfo("UTC"))
    return now.astimezone(tz).date()


def parse_expiry_date(value: Any, tz: ZoneInfo) -> date:
    """Normalize a stored expiry value to a calendar day.

    Accepts ``date``, ``datetime`` and ISO-8601 strings. Timezone-aware
    values are converted into ``tz`` before the day is taken; naive
    values are read as already local.

    Raises:
        ValueError: If the value cannot be read as a date.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty expiry date")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        if len(text) == 10:
            return date.fromisoformat(text)
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"unsupported expiry date type {type(value).__name__}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return parsed.date()


def parse_quantity(value: Any) -> int:
    """Read a stored quantity, treating a missing value as 0.

    Raises:
        ValueError: If the value is not a whole number.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError("boolean is not a quantity")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"fractional quantity {value}")
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(f"unsupported quantity type {type(value).__name__}")


def classify_inventory(
    items: Iterable[InventoryItem],
    expiry_warning_days: int,
    low_stock_threshold: int,
    today: date,
    timezone_name: str = DEFAULT_TIMEZONE,
) -> ClassificationResult:
    """Classify an inventory snapshot into expired, near-expiry and low-stock.

    Rules per item:
      1. With a readable expiry date, ``d = (expiry_day - today).days``.
         ``d <= 0`` is expired (``days_expired = |d|``);
         ``0 < d <= expiry_warning_days`` is near expiry.
      2. ``quantity <= low_stock_threshold`` is low stock, regardless of (1).

    Ordering (stable, ties keep input order):
      - expired: most days expired first
      - near_expiry: fewest days left first
      - low_stock: lowest quantity first

    Args:
        items: The store's inventory snapshot.
        expiry_warning_days: Near-expiry window in days.
        low_stock_threshold: Inclusive low-stock quantity.
        today: The run's reference day.
        timezone_name: Timezone used to read timezone-aware expiry values.

    Returns:
        ClassificationResult with the three sorted lists.
    """
    tz = ZoneInfo(timezone_name)
    expired: list[ExpiredItem] = []
    near_expiry: list[NearExpiryItem] = []
    low_stock: list[LowStockItem] = []

    for item in items:
        name = item.name

        # ── Expiry ───────────────────────────────────────
        if item.expiry_date not in (None, ""):
            try:
                expiry_day = parse_expiry_date(item.expiry_date, tz)
            except (TypeError, ValueError) as e:
                logger.warning(
                    "Invalid expiry date for item %s (%r): %s",
                    name, item.expiry_date, e,
                )
            else:
                days_until = (expiry_day - today).days
                if days_until <= 0:
                    expired.append(ExpiredItem(name, abs(days_until), expiry_day))
                elif days_until <= expiry_warning_days:
                    near_expiry.append(NearExpiryItem(name, days_until, expiry_day))

        # ── Stock level ──────────────────────────────────
        try:
            quantity = parse_quantity(item.quantity)
        except (TypeError, ValueError) as e:
            logger.warning(
                "Invalid quantity for item %s (%r): %s", name, item.quantity, e,
            )
            continue
        if quantity <= low_stock_threshold:
            low_stock.append(LowStockItem(name, quantity))

    expired.sort(key=lambda i: i.days_expired, reverse=True)
    near_expiry.sort(key=lambda i: i.days_until_expiry)
    low_stock.sort(key=lambda i: i.quantity)

    logger.debug(
        "Classified: %d expired, %d near expiry, %d low stock",
        len(expired), len(near_expiry), len(low_stock),
    )
    return ClassificationResult(
        expired=expired, near_expiry=near_expiry, low_stock=low_stock,
    )


def apply_toggles(
    result: ClassificationResult, settings: AlertSettings,
) -> ClassificationResult:
    """Drop the categories a store has switched off.

    Args:
        result: Output of classify_inventory().
        settings: The store's effective settings.

    Returns:
        A new ClassificationResult; ``result`` is left as is.
    """
    filtered = replace(result)
    if not settings.enable_expiry_alerts:
        filtered = replace(filtered, expired=[], near_expiry=[])
    if not settings.enable_low_stock_alerts:
        filtered = replace(filtered, low_stock=[])
    return filtered
