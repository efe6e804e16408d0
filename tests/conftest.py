"""Shared fixtures: a temporary SQLite database and a scripted gateway."""

from __future__ import annotations

import asyncio
import time
from datetime import date, datetime, timezone
from typing import Optional, Union

import pytest
import pytest_asyncio

from stockwatch.database import queries
from stockwatch.database.db import Database
from stockwatch.database.models import DeliveryResult, InventoryItem, Store, Subscriber
from stockwatch.notifier.telegram_bot import MessageGateway

TODAY = date(2026, 10, 16)
FIXED_NOW = datetime(2026, 10, 16, 2, 30, tzinfo=timezone.utc)


class FakeGateway(MessageGateway):
    """Records every send and answers with scripted outcomes per chat id.

    Chats without a scripted outcome succeed. ``delay`` makes each send
    take that many seconds, and ``times`` holds the monotonic start time
    of every send.
    """

    def __init__(
        self,
        outcomes: Optional[dict[str, Union[DeliveryResult, Exception]]] = None,
        delay: float = 0.0,
    ) -> None:
        self.outcomes = outcomes or {}
        self.delay = delay
        self.sent: list[tuple[str, str]] = []
        self.times: list[float] = []
        self.closed = False

    async def initialize(self) -> bool:
        return True

    async def shutdown(self) -> None:
        self.closed = True

    async def send_message(self, chat_id: str, text: str) -> DeliveryResult:
        self.times.append(time.monotonic())
        self.sent.append((chat_id, text))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.get(chat_id, DeliveryResult.ok())
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def chats(self) -> list[str]:
        return [chat for chat, _ in self.sent]

    def gaps(self) -> list[float]:
        """Seconds between the starts of consecutive sends."""
        return [b - a for a, b in zip(self.times, self.times[1:])]


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "stockwatch-test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


async def add_store(
    db: Database,
    store_id: str,
    name: str = "Sharma General Store",
    chats: tuple[str, ...] = (),
    items: tuple[tuple, ...] = (),
    settings: Optional[dict] = None,
) -> Store:
    """Create a store with subscribers (one per chat id) and inventory rows.

    ``items`` entries are (name, quantity, expiry_date).
    """
    store = Store(id=store_id, name=name)
    await queries.create_store(db, store)
    for n, chat in enumerate(chats, 1):
        await queries.upsert_subscriber(db, Subscriber(
            id=None,
            store_id=store_id,
            telegram_user_id=f"{store_id}-user-{n}",
            chat_id=chat,
            first_name=f"User {n}",
        ))
    for item_name, quantity, expiry in items:
        await queries.add_inventory_item(
            db, InventoryItem(None, store_id, item_name, quantity, expiry),
        )
    if settings:
        await queries.upsert_alert_settings(db, store_id, settings)
    return store
