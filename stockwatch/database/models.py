"""Stockwatch — Data Models.

Dataclasses for every entity the alert pipeline touches: stores, their
alert settings, inventory items and notification subscribers, plus the
transient records produced during a run (classified items, delivery
outcomes and run statistics).

Persisted dataclasses include:
  - to_db_dict(): converts to a dict suitable for SQLite insertion
  - from_db_row(row): classmethod to reconstruct from a DB row dict
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

DEFAULT_STORE_NAME = "Your Store"
DEFAULT_ITEM_NAME = "Unnamed Item"


# ═══════════════════════════════════════════════════════════
# Persisted Models
# ═══════════════════════════════════════════════════════════


@dataclass
class Store:
    """A tenant shop.

    Attributes:
        id: Store identifier (also the owner's identity uid).
        name: Display name shown in alert headers.
    """

    id: str
    name: str = DEFAULT_STORE_NAME

    def to_db_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Store":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or DEFAULT_STORE_NAME,
        )


@dataclass(frozen=True)
class AlertSettings:
    """Effective alert configuration for one store.

    Attributes:
        low_stock_threshold: Quantity at or below which an item is low stock.
        expiry_warning_days: Days ahead of expiry an item starts being reported.
        enable_expiry_alerts: Whether expired / near-expiry sections are sent.
        enable_low_stock_alerts: Whether the low-stock section is sent.
    """

    low_stock_threshold: int = 5
    expiry_warning_days: int = 7
    enable_expiry_alerts: bool = True
    enable_low_stock_alerts: bool = True


DEFAULT_ALERT_SETTINGS = AlertSettings()


@dataclass
class InventoryItem:
    """A stocked product as read from the inventory table.

    ``quantity`` and ``expiry_date`` are kept as stored; the classifier
    validates them per item so one malformed row cannot fail a run.

    Attributes:
        id: Row id.
        store_id: Owning store.
        name: Product name.
        quantity: Units on hand (None when absent).
        expiry_date: Raw expiry value (ISO string, date, or None).
    """

    id: Optional[int]
    store_id: str
    name: str = DEFAULT_ITEM_NAME
    quantity: Any = 0
    expiry_date: Any = None

    def to_db_dict(self) -> dict[str, Any]:
        expiry = self.expiry_date
        if isinstance(expiry, date):
            expiry = expiry.isoformat()
        return {
            "store_id": self.store_id,
            "name": self.name,
            "quantity": self.quantity,
            "expiry_date": expiry,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "InventoryItem":
        return cls(
            id=row.get("id"),
            store_id=str(row["store_id"]),
            name=row.get("name") or DEFAULT_ITEM_NAME,
            quantity=row.get("quantity"),
            expiry_date=row.get("expiry_date"),
        )


@dataclass
class Subscriber:
    """A Telegram chat registered to receive one store's alerts.

    Attributes:
        id: Row id (None before insertion).
        store_id: Store whose alerts this chat receives.
        telegram_user_id: Telegram user who registered.
        chat_id: Delivery endpoint.
        username: Telegram @username, if any.
        first_name: Telegram first name.
        joined_at: Registration timestamp (ISO string).
        last_alert_sent: Timestamp of the last successful scheduled alert.
    """

    id: Optional[int]
    store_id: str
    telegram_user_id: str
    chat_id: str
    username: Optional[str] = None
    first_name: str = ""
    joined_at: Optional[str] = None
    last_alert_sent: Optional[str] = None

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "store_id": self.store_id,
            "telegram_user_id": self.telegram_user_id,
            "chat_id": self.chat_id,
            "username": self.username,
            "first_name": self.first_name,
            "last_alert_sent": self.last_alert_sent,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Subscriber":
        return cls(
            id=row.get("id"),
            store_id=str(row["store_id"]),
            telegram_user_id=str(row["telegram_user_id"]),
            chat_id=str(row["chat_id"]),
            username=row.get("username"),
            first_name=row.get("first_name") or "",
            joined_at=row.get("joined_at"),
            last_alert_sent=row.get("last_alert_sent"),
        )


# ═══════════════════════════════════════════════════════════
# Classification Models
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ExpiredItem:
    """An item whose expiry day is today or already past."""

    name: str
    days_expired: int
    expiry_date: date


@dataclass(frozen=True)
class NearExpiryItem:
    """An item expiring within the store's warning window."""

    name: str
    days_until_expiry: int
    expiry_date: date


@dataclass(frozen=True)
class LowStockItem:
    """An item at or below the low-stock threshold."""

    name: str
    quantity: int


@dataclass
class ClassificationResult:
    """The three alert categories for one store snapshot."""

    expired: list[ExpiredItem] = field(default_factory=list)
    near_expiry: list[NearExpiryItem] = field(default_factory=list)
    low_stock: list[LowStockItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when no category has any entry."""
        return not (self.expired or self.near_expiry or self.low_stock)


# ═══════════════════════════════════════════════════════════
# Delivery & Run Models
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one gateway send.

    Attributes:
        success: The message was accepted by the gateway.
        permanent_failure: The endpoint can never be reached again
            (bot blocked, account deactivated, chat gone).
        error: Error description when not successful.
    """

    success: bool
    permanent_failure: bool = False
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "DeliveryResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str, permanent: bool = False) -> "DeliveryResult":
        return cls(success=False, permanent_failure=permanent, error=error)


@dataclass
class DispatchOutcome:
    """Per-store delivery counts."""

    sent: int = 0
    removed: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.sent + self.removed + self.failed


@dataclass
class RunSummary:
    """Statistics for one complete batch run.

    Attributes:
        stores_processed: Stores enumerated in the run.
        stores_alerted: Stores with at least one successful delivery.
        stores_failed: Stores whose processing raised.
        alerts_sent: Successful deliveries across all stores.
        subscribers_removed: Subscribers deleted for permanent failures.
        duration_seconds: Wall-clock run time.
    """

    stores_processed: int = 0
    stores_alerted: int = 0
    stores_failed: int = 0
    alerts_sent: int = 0
    subscribers_removed: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stores_processed": self.stores_processed,
            "stores_alerted": self.stores_alerted,
            "stores_failed": self.stores_failed,
            "alerts_sent": self.alerts_sent,
            "subscribers_removed": self.subscribers_removed,
            "duration_seconds": self.duration_seconds,
        }
