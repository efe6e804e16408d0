"""Stockwatch — Database Query Operations.

All async database read/write operations. Every function:
  - Takes the Database handle explicitly as its first argument
  - Uses parameterized queries (? placeholders, never f-strings for values)
  - Commits after writes
  - Returns dataclasses or clean dictionaries (converts Row objects)
  - Logs operations at DEBUG level
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from stockwatch.database.db import Database
from stockwatch.database.models import InventoryItem, Store, Subscriber
from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

SETTINGS_COLUMNS = (
    "low_stock_threshold",
    "expiry_warning_days",
    "enable_expiry_alerts",
    "enable_low_stock_alerts",
)


def _row_to_dict(row: Any) -> dict[str, Any]:
    """Convert an aiosqlite Row to a plain dictionary."""
    return dict(row)


# ═══════════════════════════════════════════════════════════
# Store Operations
# ═══════════════════════════════════════════════════════════


async def list_stores(db: Database) -> list[Store]:
    """Return every store, ordered by id.

    Args:
        db: Active database instance.

    Returns:
        List of Store records.
    """
    conn = await db.get_connection()
    cursor = await conn.execute("SELECT id, name FROM stores ORDER BY id")
    rows = await cursor.fetchall()
    logger.debug("list_stores() → %d stores", len(rows))
    return [Store.from_db_row(_row_to_dict(r)) for r in rows]


async def get_store(db: Database, store_id: str) -> Optional[Store]:
    """Retrieve a single store.

    Args:
        db: Active database instance.
        store_id: Store identifier.

    Returns:
        The Store, or None if not found.
    """
    conn = await db.get_connection()
    cursor = await conn.execute(
        "SELECT id, name FROM stores WHERE id = ?",
        (store_id,),
    )
    row = await cursor.fetchone()
    logger.debug("get_store(%s) → %s", store_id, "found" if row else "not found")
    return Store.from_db_row(_row_to_dict(row)) if row else None


async def create_store(db: Database, store: Store) -> None:
    """Insert a store, ignoring it if the id already exists.

    Args:
        db: Active database instance.
        store: Store to insert.
    """
    conn = await db.get_connection()
    d = store.to_db_dict()
    await conn.execute(
        "INSERT OR IGNORE INTO stores (id, name) VALUES (?, ?)",
        (d["id"], d["name"]),
    )
    await conn.commit()
    logger.debug("Created store %s (%s)", store.id, store.name)


# ═══════════════════════════════════════════════════════════
# Alert Settings Operations
# ═══════════════════════════════════════════════════════════


async def get_alert_settings_row(
    db: Database, store_id: str,
) -> Optional[dict[str, Any]]:
    """Read the raw stored overrides for a store.

    Only non-NULL columns are returned, so the caller can overlay them
    on the defaults field by field.

    Args:
        db: Active database instance.
        store_id: Store identifier.

    Returns:
        Dict of stored overrides, or None if the store has no settings row.
    """
    conn = await db.get_connection()
    cursor = await conn.execute(
        "SELECT * FROM alert_settings WHERE store_id = ?",
        (store_id,),
    )
    row = await cursor.fetchone()
    if row is None:
        logger.debug("get_alert_settings_row(%s) → not found", store_id)
        return None

    data = _row_to_dict(row)
    overrides = {k: data[k] for k in SETTINGS_COLUMNS if data.get(k) is not None}
    logger.debug("get_alert_settings_row(%s) → %s", store_id, overrides)
    return overrides


async def upsert_alert_settings(
    db: Database, store_id: str, overrides: dict[str, Any],
) -> None:
    """Store settings overrides for a store.

    Columns not named in ``overrides`` keep their stored value (or stay
    NULL for a new row).

    Args:
        db: Active database instance.
        store_id: Store identifier.
        overrides: Mapping of settings column → value.

    Raises:
        ValueError: If an unknown settings column is given.
    """
    unknown = set(overrides) - set(SETTINGS_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown alert settings fields: {', '.join(sorted(unknown))}")

    values = {
        k: int(v) if isinstance(v, bool) else v for k, v in overrides.items()
    }
    conn = await db.get_connection()
    await conn.execute(
        "INSERT OR IGNORE INTO alert_settings (store_id) VALUES (?)",
        (store_id,),
    )
    for column, value in values.items():
        # column names come from SETTINGS_COLUMNS only
        await conn.execute(
            f"UPDATE alert_settings SET {column} = ?, "
            "updated_at = datetime('now', 'localtime') WHERE store_id = ?",
            (value, store_id),
        )
    await conn.commit()
    logger.debug("Updated alert settings for %s: %s", store_id, values)


# ═══════════════════════════════════════════════════════════
# Inventory Operations
# ═══════════════════════════════════════════════════════════


async def list_inventory(db: Database, store_id: str) -> list[InventoryItem]:
    """Read the inventory snapshot for one store, in insertion order.

    Args:
        db: Active database instance.
        store_id: Store identifier.

    Returns:
        List of InventoryItem records (values unvalidated).
    """
    conn = await db.get_connection()
    cursor = await conn.execute(
        "SELECT * FROM inventory_items WHERE store_id = ? ORDER BY id",
        (store_id,),
    )
    rows = await cursor.fetchall()
    logger.debug("list_inventory(%s) → %d items", store_id, len(rows))
    return [InventoryItem.from_db_row(_row_to_dict(r)) for r in rows]


async def add_inventory_item(db: Database, item: InventoryItem) -> int:
    """Insert an inventory item.

    Args:
        db: Active database instance.
        item: Item to insert (its id is ignored).

    Returns:
        The new row id.
    """
    conn = await db.get_connection()
    d = item.to_db_dict()
    cursor = await conn.execute(
        """
        INSERT INTO inventory_items (store_id, name, quantity, expiry_date)
        VALUES (?, ?, ?, ?)
        """,
        (d["store_id"], d["name"], d["quantity"], d["expiry_date"]),
    )
    await conn.commit()
    logger.debug("Inserted inventory item %s for %s", item.name, item.store_id)
    return cursor.lastrowid


# ═══════════════════════════════════════════════════════════
# Subscriber Operations
# ═══════════════════════════════════════════════════════════


async def list_subscribers(db: Database, store_id: str) -> list[Subscriber]:
    """Enumerate the notification endpoints of one store.

    Args:
        db: Active database instance.
        store_id: Store identifier.

    Returns:
        List of Subscriber records, oldest registration first.
    """
    conn = await db.get_connection()
    cursor = await conn.execute(
        "SELECT * FROM subscribers WHERE store_id = ? ORDER BY id",
        (store_id,),
    )
    rows = await cursor.fetchall()
    logger.debug("list_subscribers(%s) → %d subscribers", store_id, len(rows))
    return [Subscriber.from_db_row(_row_to_dict(r)) for r in rows]


async def upsert_subscriber(db: Database, subscriber: Subscriber) -> None:
    """Register a chat for a store, or refresh an existing registration.

    Keyed by (store_id, telegram_user_id). Re-registering resets
    ``last_alert_sent``.

    Args:
        db: Active database instance.
        subscriber: Subscriber to store (its id is ignored).
    """
    conn = await db.get_connection()
    d = subscriber.to_db_dict()
    await conn.execute(
        """
        INSERT INTO subscribers (
            store_id, telegram_user_id, chat_id, username, first_name, last_alert_sent
        ) VALUES (?, ?, ?, ?, ?, NULL)
        ON CONFLICT (store_id, telegram_user_id) DO UPDATE SET
            chat_id = excluded.chat_id,
            username = excluded.username,
            first_name = excluded.first_name,
            last_alert_sent = NULL
        """,
        (
            d["store_id"], d["telegram_user_id"], d["chat_id"],
            d["username"], d["first_name"],
        ),
    )
    await conn.commit()
    logger.debug(
        "Upserted subscriber user=%s store=%s chat=%s",
        subscriber.telegram_user_id, subscriber.store_id, subscriber.chat_id,
    )


async def mark_alert_sent(
    db: Database, subscriber_id: int, sent_at: datetime,
) -> None:
    """Record a successful alert delivery.

    Args:
        db: Active database instance.
        subscriber_id: Subscriber row id.
        sent_at: Delivery time.
    """
    conn = await db.get_connection()
    await conn.execute(
        "UPDATE subscribers SET last_alert_sent = ? WHERE id = ?",
        (sent_at.isoformat(timespec="seconds"), subscriber_id),
    )
    await conn.commit()
    logger.debug("Subscriber %s last_alert_sent → %s", subscriber_id, sent_at)


async def delete_subscriber(db: Database, subscriber_id: int) -> None:
    """Remove a subscriber record.

    Args:
        db: Active database instance.
        subscriber_id: Subscriber row id.
    """
    conn = await db.get_connection()
    await conn.execute("DELETE FROM subscribers WHERE id = ?", (subscriber_id,))
    await conn.commit()
    logger.debug("Deleted subscriber %s", subscriber_id)


async def find_subscriptions(
    db: Database, telegram_user_id: str,
) -> list[tuple[Store, Subscriber]]:
    """Find every store a Telegram user is subscribed to.

    Args:
        db: Active database instance.
        telegram_user_id: Telegram user id.

    Returns:
        (store, subscriber) pairs, oldest subscription first.
    """
    conn = await db.get_connection()
    cursor = await conn.execute(
        """
        SELECT s.*, st.name AS store_name
        FROM subscribers s
        JOIN stores st ON st.id = s.store_id
        WHERE s.telegram_user_id = ?
        ORDER BY s.id
        """,
        (str(telegram_user_id),),
    )
    rows = await cursor.fetchall()
    pairs = []
    for row in rows:
        data = _row_to_dict(row)
        store = Store.from_db_row({"id": data["store_id"], "name": data["store_name"]})
        pairs.append((store, Subscriber.from_db_row(data)))
    logger.debug("find_subscriptions(%s) → %d", telegram_user_id, len(pairs))
    return pairs
