"""Stockwatch — Alert Settings Resolver.

Turns a store id into its effective AlertSettings: the fixed defaults
overlaid, field by field, with whatever the store has saved.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping

from stockwatch.database import queries
from stockwatch.database.db import Database
from stockwatch.database.models import DEFAULT_ALERT_SETTINGS, AlertSettings
from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

_INT_FIELDS = ("low_stock_threshold", "expiry_warning_days")
_BOOL_FIELDS = ("enable_expiry_alerts", "enable_low_stock_alerts")


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not a count")
    number = int(value)
    if number < 0:
        raise ValueError(f"must be >= 0, got {number}")
    return number


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if isinstance(value, (bool, int)):
        return bool(value)
    raise TypeError(f"not a boolean: {value!r}")


def merge_settings(
    base: AlertSettings, overrides: Mapping[str, Any] | None,
) -> AlertSettings:
    """Overlay stored overrides on a base configuration.

    Merge rules, applied per field:
      - a field absent from ``overrides`` (or None) keeps the base value;
      - thresholds are coerced to non-negative ints;
      - toggles are coerced to bools (0/1 and "true"/"false" accepted);
      - a value that fails coercion is logged and the base value kept;
      - keys that are not AlertSettings fields are ignored.

    Args:
        base: Starting configuration, normally DEFAULT_ALERT_SETTINGS.
        overrides: Stored values keyed by field name.

    Returns:
        A new AlertSettings. ``base`` is not modified.
    """
    if not overrides:
        return base

    changes: dict[str, Any] = {}
    for name, value in overrides.items():
        if value is None:
            continue
        if name in _INT_FIELDS:
            coerce = _coerce_int
        elif name in _BOOL_FIELDS:
            coerce = _coerce_bool
        else:
            logger.debug("Ignoring unknown settings field %s", name)
            continue
        try:
            changes[name] = coerce(value)
        except (TypeError, ValueError) as e:
            logger.warning(
                "Invalid stored value for %s (%r): %s, keeping %r",
                name, value, e, getattr(base, name),
            )

    return replace(base, **changes)


async def resolve_settings(db: Database, store_id: str) -> AlertSettings:
    """Return the effective alert settings for a store.

    Never raises: a missing settings row or any read error yields the
    defaults.

    Args:
        db: Active database instance.
        store_id: Store identifier.

    Returns:
        Effective AlertSettings.
    """
    try:
        overrides = await queries.get_alert_settings_row(db, store_id)
    except Exception as e:
        logger.warning(
            "Could not read alert settings for store %s, using defaults: %s",
            store_id, e,
        )
        return DEFAULT_ALERT_SETTINGS

    if overrides is None:
        logger.debug("Store %s has no saved settings, using defaults", store_id)
        return DEFAULT_ALERT_SETTINGS

    return merge_settings(DEFAULT_ALERT_SETTINGS, overrides)
