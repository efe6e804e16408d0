"""Stockwatch — SQLite Connection Manager.

Provides async SQLite database connection management using aiosqlite.
Handles database initialization, schema creation, indexes, and
connection lifecycle. A Database instance is the store-access handle
passed explicitly to every query, resolver and pipeline call.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

# ── Schema Definitions ────────────────────────────────────
SCHEMA_SQL = """
-- ═══ Stores Table ═══
-- Tenant shops. The id is the owner's identity uid.
CREATE TABLE IF NOT EXISTS stores (
    id          TEXT    PRIMARY KEY,
    name        TEXT    DEFAULT '',
    created_at  DATETIME DEFAULT (datetime('now', 'localtime'))
);

-- ═══ Alert Settings Table ═══
-- Per-store overrides. NULL columns fall back to the defaults.
CREATE TABLE IF NOT EXISTS alert_settings (
    store_id                TEXT    PRIMARY KEY,
    low_stock_threshold     INTEGER,
    expiry_warning_days     INTEGER,
    enable_expiry_alerts    INTEGER,
    enable_low_stock_alerts INTEGER,
    updated_at              DATETIME DEFAULT (datetime('now', 'localtime')),
    FOREIGN KEY (store_id) REFERENCES stores(id) ON DELETE CASCADE
);

-- ═══ Inventory Table ═══
-- Written by the point-of-sale side; read-only to the alert run.
CREATE TABLE IF NOT EXISTS inventory_items (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    store_id    TEXT    NOT NULL,
    name        TEXT    DEFAULT '',
    quantity    INTEGER,
    expiry_date TEXT,
    FOREIGN KEY (store_id) REFERENCES stores(id) ON DELETE CASCADE
);

-- ═══ Subscribers Table ═══
-- Telegram chats registered through /start store_<id>.
CREATE TABLE IF NOT EXISTS subscribers (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    store_id         TEXT    NOT NULL,
    telegram_user_id TEXT    NOT NULL,
    chat_id          TEXT    NOT NULL,
    username         TEXT,
    first_name       TEXT    DEFAULT '',
    joined_at        DATETIME DEFAULT (datetime('now', 'localtime')),
    last_alert_sent  DATETIME,
    UNIQUE (store_id, telegram_user_id),
    FOREIGN KEY (store_id) REFERENCES stores(id) ON DELETE CASCADE
);

-- ═══ Performance Indexes ═══
CREATE INDEX IF NOT EXISTS idx_inventory_store        ON inventory_items(store_id);
CREATE INDEX IF NOT EXISTS idx_subscribers_store      ON subscribers(store_id);
CREATE INDEX IF NOT EXISTS idx_subscribers_user       ON subscribers(telegram_user_id);
"""


class Database:
    """Async SQLite database connection manager.

    Manages the database lifecycle including initialization, schema creation,
    and a persistent connection with WAL mode and foreign keys enabled.

    Attributes:
        db_path: Resolved absolute path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the database manager.

        Args:
            db_path: Relative or absolute path to the SQLite database file.
                     Parent directories will be created if they don't exist.
        """
        self.db_path = Path(db_path).resolve()
        self._connection: aiosqlite.Connection | None = None
        logger.debug("Database manager initialized with path: %s", self.db_path)

    async def initialize(self) -> None:
        """Open the connection, set pragmas and create all tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Connecting to database: %s", self.db_path)
        self._connection = await aiosqlite.connect(str(self.db_path))

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA foreign_keys=ON")
        self._connection.row_factory = aiosqlite.Row

        await self._connection.executescript(SCHEMA_SQL)
        await self._connection.commit()

        logger.info("Database initialized — all tables ready")

    async def get_connection(self) -> aiosqlite.Connection:
        """Get the active database connection, initializing if necessary.

        Returns:
            The active aiosqlite connection.
        """
        if self._connection is None:
            await self.initialize()
        return self._connection

    async def close(self) -> None:
        """Close the database connection gracefully.

        Safe to call even if the connection is already closed or was
        never opened.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("Database connection closed")

    async def __aenter__(self) -> "Database":
        await self.initialize()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
