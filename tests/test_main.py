"""Application entry points: --test-alert, --issue-token and a single run."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeGateway, add_store
from stockwatch import main as main_module
from stockwatch.auth import IdTokenVerifier, create_id_token
from stockwatch.config import (
    AppConfig,
    AuthConfig,
    RateLimitConfig,
    ScheduleConfig,
    TelegramConfig,
)
from stockwatch.database import queries
from stockwatch.database.db import Database
from stockwatch.main import StockwatchApp, main

SECRET = "test-secret"


def make_config(tmp_path, auth=True) -> AppConfig:
    return AppConfig(
        telegram=TelegramConfig(bot_token="123:abc", enable_commands=False),
        schedule=ScheduleConfig(hour=8, minute=0, timezone="Asia/Kolkata"),
        rate_limits=RateLimitConfig(subscriber_interval_seconds=0, store_interval_seconds=0),
        dashboard_url="https://dashboard.example.com",
        database_path=str(tmp_path / "stockwatch-test.db"),
        log_level="INFO",
        auth=AuthConfig(jwt_secret=SECRET) if auth else None,
    )


@pytest.fixture
def fake_gateway(monkeypatch) -> FakeGateway:
    gateway = FakeGateway()
    monkeypatch.setattr(main_module, "TelegramGateway", lambda *args, **kwargs: gateway)
    return gateway


@pytest.fixture
def use_config(monkeypatch):
    def install(config):
        monkeypatch.setattr(main_module, "load_config", lambda: config)
        return config
    return install


def seed(config, **store):
    async def _seed():
        database = Database(config.database_path)
        await database.initialize()
        try:
            await add_store(database, **store)
        finally:
            await database.close()
    asyncio.run(_seed())


def test_test_alert_flag_reaches_subscribers(tmp_path, fake_gateway, use_config):
    config = use_config(make_config(tmp_path))
    seed(config, store_id="s1", name="Sharma General Store", chats=("100", "200"))
    token = create_id_token("s1", SECRET)

    assert main(["--test-alert", "s1", "--token", token]) == 0

    assert fake_gateway.chats() == ["100", "200"]
    assert "Test Alert" in fake_gateway.sent[0][1]
    assert "Sharma General Store" in fake_gateway.sent[0][1]
    assert fake_gateway.closed


@pytest.mark.parametrize("token", [
    lambda: create_id_token("other-store", SECRET),
    lambda: create_id_token("s1", "wrong-secret"),
    lambda: None,
])
def test_test_alert_flag_rejects_bad_tokens(tmp_path, fake_gateway, use_config, token):
    config = use_config(make_config(tmp_path))
    seed(config, store_id="s1", chats=("100",))
    argv = ["--test-alert", "s1"]
    if token() is not None:
        argv += ["--token", token()]

    assert main(argv) == 1
    assert fake_gateway.sent == []


def test_test_alert_flag_without_auth_section(tmp_path, fake_gateway, use_config):
    config = use_config(make_config(tmp_path, auth=False))
    seed(config, store_id="s1", chats=("100",))

    assert main(["--test-alert", "s1", "--token", create_id_token("s1", SECRET)]) == 1
    assert fake_gateway.sent == []


def test_test_alert_flag_for_store_without_subscribers(tmp_path, fake_gateway, use_config):
    config = use_config(make_config(tmp_path))
    seed(config, store_id="s1")

    assert main(["--test-alert", "s1", "--token", create_id_token("s1", SECRET)]) == 1


def test_token_flag_needs_test_alert():
    with pytest.raises(SystemExit):
        main(["--token", "abc"])


def test_issue_token_prints_a_verifiable_token(tmp_path, use_config, capsys):
    use_config(make_config(tmp_path))

    assert main(["--issue-token", "s1"]) == 0

    token = capsys.readouterr().out.strip()
    assert IdTokenVerifier(SECRET)(token) == "s1"


async def test_run_once_records_the_summary(db, tmp_path, fake_gateway):
    await add_store(db, "s1", chats=("100",), items=(("Milk", 1, None),))
    app = StockwatchApp(make_config(tmp_path))

    summary = await app.run_once()

    assert summary.alerts_sent == 1
    assert app.run_count == 1
    assert app.last_summary is summary
    assert fake_gateway.chats() == ["100"]
    [subscriber] = await queries.list_subscribers(db, "s1")
    assert subscriber.last_alert_sent is not None
