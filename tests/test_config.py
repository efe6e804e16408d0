"""Configuration loading and validation."""

from __future__ import annotations

import textwrap

import pytest

from stockwatch.config import load_config

SETTINGS = textwrap.dedent("""\
    telegram:
      bot_token: ${STOCKWATCH_TEST_TOKEN}
    schedule:
      hour: {hour}
      minute: 30
      timezone: {timezone}
    rate_limits:
      subscriber_interval_seconds: 0.2
    dashboard:
      url: https://dashboard.example.com
    database:
      path: data/test.db
    logging:
      level: DEBUG
""")


def write_settings(tmp_path, hour=8, timezone="Asia/Kolkata"):
    path = tmp_path / "settings.yaml"
    # str.format would trip over ${...}, so substitute by hand
    text = SETTINGS.replace("{hour}", str(hour)).replace("{timezone}", timezone)
    path.write_text(text, encoding="utf-8")
    return path


def test_loads_and_resolves_env(tmp_path, monkeypatch):
    monkeypatch.setenv("STOCKWATCH_TEST_TOKEN", "123:abc")

    config = load_config(write_settings(tmp_path), env_path=tmp_path / ".env")

    assert config.telegram.bot_token == "123:abc"
    assert config.telegram.parse_mode == "HTML"
    assert (config.schedule.hour, config.schedule.minute) == (8, 30)
    assert config.schedule.timezone == "Asia/Kolkata"
    assert config.rate_limits.subscriber_interval_seconds == 0.2
    assert config.rate_limits.store_interval_seconds == 1.0
    assert config.dashboard_url == "https://dashboard.example.com"
    assert config.database_path == "data/test.db"
    assert config.log_level == "DEBUG"


def test_env_file_is_read(tmp_path, monkeypatch):
    # setenv first so monkeypatch removes whatever load_dotenv writes
    monkeypatch.setenv("STOCKWATCH_TEST_TOKEN", "")
    monkeypatch.delenv("STOCKWATCH_TEST_TOKEN")
    env_file = tmp_path / ".env"
    env_file.write_text("STOCKWATCH_TEST_TOKEN=from-dotenv\n", encoding="utf-8")

    config = load_config(write_settings(tmp_path), env_path=env_file)

    assert config.telegram.bot_token == "from-dotenv"


def test_missing_env_var(tmp_path, monkeypatch):
    monkeypatch.delenv("STOCKWATCH_TEST_TOKEN", raising=False)

    with pytest.raises(ValueError, match="STOCKWATCH_TEST_TOKEN"):
        load_config(write_settings(tmp_path), env_path=tmp_path / ".env")


@pytest.mark.parametrize("hour, timezone, message", [
    (24, "Asia/Kolkata", "schedule.hour"),
    (8, "Mars/Olympus_Mons", "schedule.timezone"),
])
def test_invalid_schedule(tmp_path, monkeypatch, hour, timezone, message):
    monkeypatch.setenv("STOCKWATCH_TEST_TOKEN", "123:abc")

    with pytest.raises(ValueError, match=message):
        load_config(write_settings(tmp_path, hour, timezone), env_path=tmp_path / ".env")


def test_missing_section(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("telegram:\n  bot_token: x\n", encoding="utf-8")

    with pytest.raises(ValueError, match="schedule"):
        load_config(path, env_path=tmp_path / ".env")


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", env_path=tmp_path / ".env")


def test_auth_section_is_optional(tmp_path, monkeypatch):
    monkeypatch.setenv("STOCKWATCH_TEST_TOKEN", "123:abc")

    config = load_config(write_settings(tmp_path), env_path=tmp_path / ".env")

    assert config.auth is None


def test_auth_section_is_read(tmp_path, monkeypatch):
    monkeypatch.setenv("STOCKWATCH_TEST_TOKEN", "123:abc")
    monkeypatch.setenv("STOCKWATCH_TEST_SECRET", "s3cret")
    path = write_settings(tmp_path)
    with path.open("a", encoding="utf-8") as f:
        f.write("auth:\n  jwt_secret: ${STOCKWATCH_TEST_SECRET}\n")

    config = load_config(path, env_path=tmp_path / ".env")

    assert config.auth.jwt_secret == "s3cret"
    assert config.auth.algorithm == "HS256"


def test_auth_section_without_secret(tmp_path, monkeypatch):
    monkeypatch.setenv("STOCKWATCH_TEST_TOKEN", "123:abc")
    path = write_settings(tmp_path)
    with path.open("a", encoding="utf-8") as f:
        f.write("auth:\n  algorithm: HS256\n")

    with pytest.raises(ValueError, match="jwt_secret"):
        load_config(path, env_path=tmp_path / ".env")
