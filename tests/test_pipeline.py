"""End-to-end daily runs against a temporary database."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import FIXED_NOW, TODAY, FakeGateway, add_store
from stockwatch.alerts import pipeline as pipeline_module
from stockwatch.alerts.pipeline import AlertPipeline
from stockwatch.database import queries
from stockwatch.database.models import DeliveryResult
from stockwatch.notifier.dispatcher import AlertDispatcher


def expiry(days):
    return (TODAY + timedelta(days=days)).isoformat()


def make_pipeline(db, gateway):
    dispatcher = AlertDispatcher(
        db, gateway, subscriber_interval_seconds=0, clock=lambda: FIXED_NOW,
    )
    return AlertPipeline(
        db, dispatcher,
        store_interval_seconds=0,
        timezone_name="Asia/Kolkata",
        dashboard_url="https://dashboard.example.com",
    )


async def test_full_run_summary(db, gateway):
    await add_store(db, "a-store", name="Sharma General Store", chats=("100", "101"),
                    items=(("Milk", 2, expiry(1)), ("Rice", 50, None)))
    await add_store(db, "b-store", name="Gupta Kirana", chats=("200",),
                    items=(("Bread", 20, expiry(-2)),))
    await add_store(db, "c-store", name="Quiet Shop", chats=("300",),
                    items=(("Sugar", 40, expiry(30)),))

    summary = await make_pipeline(db, gateway).run(today=TODAY)

    assert summary.stores_processed == 3
    assert summary.stores_alerted == 2
    assert summary.stores_failed == 0
    assert summary.alerts_sent == 3
    assert summary.subscribers_removed == 0
    assert gateway.chats() == ["100", "101", "200"]

    milk_text = gateway.sent[0][1]
    assert "Sharma General Store - 16 Oct 2026" in milk_text
    assert "Milk - Expires in 1 day (17 Oct)" in milk_text
    assert "Milk - Only 2 left" in milk_text
    assert "Rice" not in milk_text
    assert "Bread - Expired 2 days ago" in gateway.sent[2][1]


async def test_store_without_subscribers_is_skipped_not_failed(db, gateway):
    await add_store(db, "lonely", items=(("Milk", 0, expiry(-1)),))
    await add_store(db, "empty-shelves", chats=("100",))

    summary = await make_pipeline(db, gateway).run(today=TODAY)

    assert summary.stores_processed == 2
    assert summary.stores_failed == 0
    assert summary.alerts_sent == 0
    assert gateway.sent == []


async def test_one_store_failure_does_not_stop_the_run(db, gateway, monkeypatch):
    await add_store(db, "a-broken", chats=("100",), items=(("Milk", 1, None),))
    await add_store(db, "b-fine", chats=("200",), items=(("Milk", 1, None),))

    real_list_inventory = queries.list_inventory

    async def flaky_list_inventory(db_, store_id):
        if store_id == "a-broken":
            raise RuntimeError("inventory read failed")
        return await real_list_inventory(db_, store_id)

    monkeypatch.setattr(pipeline_module.queries, "list_inventory", flaky_list_inventory)

    summary = await make_pipeline(db, gateway).run(today=TODAY)

    assert summary.stores_processed == 2
    assert summary.stores_failed == 1
    assert summary.stores_alerted == 1
    assert gateway.chats() == ["200"]


async def test_store_listing_failure_aborts_the_run(db, gateway, monkeypatch):
    async def broken(db_):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(pipeline_module.queries, "list_stores", broken)

    with pytest.raises(RuntimeError):
        await make_pipeline(db, gateway).run(today=TODAY)
    assert gateway.sent == []


async def test_nothing_to_report_sends_nothing(db, gateway):
    await add_store(db, "s1", chats=("100",), items=(("Rice", 50, expiry(60)),))

    summary = await make_pipeline(db, gateway).run(today=TODAY)

    assert summary.stores_alerted == 0
    assert gateway.sent == []


async def test_disabled_categories_are_left_out(db, gateway):
    items = (("Milk", 1, expiry(-1)), ("Eggs", 1, expiry(3)))
    await add_store(db, "no-expiry", chats=("100",), items=items,
                    settings={"enable_expiry_alerts": False})
    await add_store(db, "no-stock", chats=("200",), items=items,
                    settings={"enable_low_stock_alerts": False})
    await add_store(db, "nothing", chats=("300",), items=items,
                    settings={"enable_expiry_alerts": False, "enable_low_stock_alerts": False})

    await make_pipeline(db, gateway).run(today=TODAY)

    sent = dict(gateway.sent)
    assert "Low Stock (2)" in sent["100"]
    assert "Expired" not in sent["100"] and "Expiring" not in sent["100"]
    assert "Low Stock" not in sent["200"]
    assert "Expired Items (1)" in sent["200"] and "Expiring Soon (1)" in sent["200"]
    assert "300" not in sent


async def test_store_settings_change_the_thresholds(db, gateway):
    await add_store(db, "s1", chats=("100",),
                    items=(("Oil", 9, None), ("Ghee", 20, expiry(2))),
                    settings={"low_stock_threshold": 10, "expiry_warning_days": 1})

    await make_pipeline(db, gateway).run(today=TODAY)

    [(_, text)] = gateway.sent
    assert "Oil - Only 9 left" in text
    assert "Ghee" not in text


async def test_unreachable_subscriber_is_removed_and_skipped_next_run(db):
    gateway = FakeGateway({"200": DeliveryResult.failed("Forbidden", permanent=True)})
    await add_store(db, "s1", chats=("100", "200"), items=(("Milk", 0, None),))
    pipeline = make_pipeline(db, gateway)

    first = await pipeline.run(today=TODAY)
    assert (first.alerts_sent, first.subscribers_removed) == (1, 1)

    gateway.sent.clear()
    second = await pipeline.run(today=TODAY)
    assert (second.alerts_sent, second.subscribers_removed) == (1, 0)
    assert gateway.chats() == ["100"]


async def test_bad_inventory_rows_do_not_break_the_store(db, gateway):
    await add_store(db, "s1", chats=("100",), items=(
        ("Mystery", "lots", "someday"),
        ("Milk", 3, expiry(0)),
    ))

    summary = await make_pipeline(db, gateway).run(today=TODAY)

    assert summary.stores_failed == 0
    [(_, text)] = gateway.sent
    assert "Milk - Expired today" in text
    assert "Mystery" not in text
