"""Delivery outcomes and the subscriber bookkeeping they drive."""

from __future__ import annotations

import pytest

from conftest import FIXED_NOW, FakeGateway, add_store
from stockwatch.database import queries
from stockwatch.database.models import DeliveryResult
from stockwatch.errors import (
    AuthenticationError,
    InvalidRequestError,
    NoSubscribersError,
    PermissionDeniedError,
)
from stockwatch.notifier.dispatcher import FAILED, REMOVED, SENT, AlertDispatcher


def make_dispatcher(db, gateway, verifier=None):
    return AlertDispatcher(
        db, gateway,
        subscriber_interval_seconds=0,
        token_verifier=verifier,
        dashboard_url="https://dashboard.example.com",
        clock=lambda: FIXED_NOW,
    )


async def test_success_stamps_last_alert_sent(db, gateway):
    await add_store(db, "s1", chats=("100",))
    dispatcher = make_dispatcher(db, gateway)

    outcome = await dispatcher.dispatch("s1", "hello")

    assert (outcome.sent, outcome.removed, outcome.failed) == (1, 0, 0)
    assert gateway.sent == [("100", "hello")]
    [subscriber] = await queries.list_subscribers(db, "s1")
    assert subscriber.last_alert_sent == "2026-10-16T02:30:00+00:00"


async def test_permanent_failure_removes_only_that_subscriber(db):
    gateway = FakeGateway({
        "200": DeliveryResult.failed("Forbidden: bot was blocked by the user", permanent=True),
    })
    await add_store(db, "s1", chats=("100", "200", "300"))
    dispatcher = make_dispatcher(db, gateway)

    outcome = await dispatcher.dispatch("s1", "hello")

    assert (outcome.sent, outcome.removed, outcome.failed) == (2, 1, 0)
    assert gateway.chats() == ["100", "200", "300"]
    remaining = [s.chat_id for s in await queries.list_subscribers(db, "s1")]
    assert remaining == ["100", "300"]


async def test_generic_failure_leaves_subscriber_untouched(db):
    gateway = FakeGateway({"100": DeliveryResult.failed("Timed out")})
    await add_store(db, "s1", chats=("100", "200"))
    dispatcher = make_dispatcher(db, gateway)

    outcome = await dispatcher.dispatch("s1", "hello")

    assert (outcome.sent, outcome.removed, outcome.failed) == (1, 0, 1)
    first, second = await queries.list_subscribers(db, "s1")
    assert first.chat_id == "100" and first.last_alert_sent is None
    assert second.last_alert_sent is not None


async def test_gateway_exception_is_contained(db):
    gateway = FakeGateway({"100": ConnectionError("socket closed")})
    await add_store(db, "s1", chats=("100", "200"))
    dispatcher = make_dispatcher(db, gateway)

    outcome = await dispatcher.dispatch("s1", "hello")

    assert (outcome.sent, outcome.failed) == (1, 1)
    assert len(await queries.list_subscribers(db, "s1")) == 2


async def test_deliver_statuses(db):
    gateway = FakeGateway({
        "gone": DeliveryResult.failed("chat not found", permanent=True),
        "flaky": DeliveryResult.failed("Bad Gateway"),
    })
    await add_store(db, "s1", chats=("ok", "gone", "flaky"))
    dispatcher = make_dispatcher(db, gateway)
    ok, gone, flaky = await queries.list_subscribers(db, "s1")

    assert await dispatcher.deliver(ok, "x") == SENT
    assert await dispatcher.deliver(gone, "x") == REMOVED
    assert await dispatcher.deliver(flaky, "x") == FAILED


async def test_no_subscribers_sends_nothing(db, gateway):
    await add_store(db, "s1")
    dispatcher = make_dispatcher(db, gateway)

    outcome = await dispatcher.dispatch("s1", "hello")

    assert outcome.attempted == 0
    assert gateway.sent == []


# ═══════════════════════════════════════════════════════════
# Test alerts
# ═══════════════════════════════════════════════════════════


def owner_verifier(token):
    if token == "bad-token":
        raise ValueError("signature mismatch")
    return token.removeprefix("token-for-")


async def test_test_alert_rejections(db, gateway):
    await add_store(db, "s1", chats=("100",))
    await add_store(db, "empty")
    dispatcher = make_dispatcher(db, gateway, verifier=owner_verifier)

    with pytest.raises(InvalidRequestError) as exc:
        await dispatcher.send_test_alert(None, "token-for-s1")
    assert exc.value.status_code == 400

    with pytest.raises(AuthenticationError) as exc:
        await dispatcher.send_test_alert("s1", None)
    assert exc.value.status_code == 401

    with pytest.raises(AuthenticationError):
        await dispatcher.send_test_alert("s1", "bad-token")

    with pytest.raises(PermissionDeniedError) as exc:
        await dispatcher.send_test_alert("s1", "token-for-someone-else")
    assert exc.value.status_code == 403

    with pytest.raises(NoSubscribersError) as exc:
        await dispatcher.send_test_alert("empty", "token-for-empty")
    assert exc.value.status_code == 404

    assert gateway.sent == []


async def test_test_alert_without_verifier_is_unauthorized(db, gateway):
    await add_store(db, "s1", chats=("100",))
    dispatcher = make_dispatcher(db, gateway)

    with pytest.raises(AuthenticationError):
        await dispatcher.send_test_alert("s1", "token-for-s1")


async def test_test_alert_reaches_subscribers_without_stamping(db):
    gateway = FakeGateway({"200": DeliveryResult.failed("user not found", permanent=True)})
    await add_store(db, "s1", name="Sharma General Store", chats=("100", "200"))

    async def async_verifier(token):
        return "s1"

    dispatcher = make_dispatcher(db, gateway, verifier=async_verifier)

    sent = await dispatcher.send_test_alert("s1", "any-token")

    assert sent == 1
    assert "Test Alert" in gateway.sent[0][1]
    assert "Sharma General Store" in gateway.sent[0][1]
    [subscriber] = await queries.list_subscribers(db, "s1")
    assert subscriber.chat_id == "100"
    assert subscriber.last_alert_sent is None
