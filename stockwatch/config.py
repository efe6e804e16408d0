"""Stockwatch — Configuration Loader.

Loads and validates application configuration from a YAML file.
Resolves environment variables referenced via ${VAR_NAME} syntax.
Uses Python dataclasses for type-safe configuration access.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv

from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

# ── Path Constants ────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
SETTINGS_PATH = CONFIG_DIR / "settings.yaml"

# ── Environment Variable Pattern ─────────────────────────
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)}")


# ═══════════════════════════════════════════════════════════
# Configuration Dataclasses
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TelegramConfig:
    """Configuration for the Telegram gateway and bot commands."""

    bot_token: str
    parse_mode: str = "HTML"
    enable_commands: bool = True


@dataclass(frozen=True)
class ScheduleConfig:
    """When the daily alert run fires."""

    hour: int
    minute: int
    timezone: str


@dataclass(frozen=True)
class RateLimitConfig:
    """Minimum spacing between deliveries and between stores."""

    subscriber_interval_seconds: float = 0.1
    store_interval_seconds: float = 1.0


@dataclass(frozen=True)
class AuthConfig:
    """Identity token settings for on-demand test alerts."""

    jwt_secret: str
    algorithm: str = "HS256"


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration container."""

    telegram: TelegramConfig
    schedule: ScheduleConfig
    rate_limits: RateLimitConfig
    dashboard_url: str
    database_path: str
    log_level: str
    auth: Optional[AuthConfig] = None


# ═══════════════════════════════════════════════════════════
# YAML Loading & Environment Variable Resolution
# ═══════════════════════════════════════════════════════════


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${VAR_NAME} references in YAML values.

    Args:
        value: A string, dict, list, or primitive from parsed YAML.

    Returns:
        The same structure with all ${VAR_NAME} placeholders replaced
        by their environment variable values.

    Raises:
        ValueError: If a referenced environment variable is not set.
    """
    if isinstance(value, str):
        for var_name in ENV_VAR_PATTERN.findall(value):
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '${{{var_name}}}' is required but not set. "
                    f"Add it to your .env file or export it in your shell."
                )
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file with UTF-8 encoding.

    Raises:
        FileNotFoundError: If the YAML file does not exist.
        ValueError: If the file is empty.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        raise ValueError(f"Configuration file is empty: {path}")

    logger.debug("Loaded configuration from %s", path)
    return data


# ═══════════════════════════════════════════════════════════
# Dataclass Builders
# ═══════════════════════════════════════════════════════════


def _build_telegram_config(data: dict[str, Any]) -> TelegramConfig:
    """Build a TelegramConfig from the 'telegram' section."""
    _validate_keys(data, ["bot_token"], "telegram")

    return TelegramConfig(
        bot_token=str(data["bot_token"]),
        parse_mode=data.get("parse_mode", "HTML"),
        enable_commands=bool(data.get("enable_commands", True)),
    )


def _build_schedule_config(data: dict[str, Any]) -> ScheduleConfig:
    """Build a ScheduleConfig from the 'schedule' section.

    Raises:
        ValueError: If the time of day or the timezone is invalid.
    """
    _validate_keys(data, ["hour", "minute", "timezone"], "schedule")

    hour = int(data["hour"])
    minute = int(data["minute"])
    if not 0 <= hour <= 23:
        raise ValueError(f"schedule.hour must be between 0 and 23, got {hour}")
    if not 0 <= minute <= 59:
        raise ValueError(f"schedule.minute must be between 0 and 59, got {minute}")

    timezone = str(data["timezone"])
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"schedule.timezone is not a known timezone: {timezone}") from e

    return ScheduleConfig(hour=hour, minute=minute, timezone=timezone)


def _build_rate_limit_config(data: dict[str, Any]) -> RateLimitConfig:
    """Build a RateLimitConfig from the optional 'rate_limits' section.

    Raises:
        ValueError: If an interval is negative.
    """
    defaults = RateLimitConfig()
    subscriber = float(data.get(
        "subscriber_interval_seconds", defaults.subscriber_interval_seconds,
    ))
    store = float(data.get("store_interval_seconds", defaults.store_interval_seconds))

    if subscriber < 0 or store < 0:
        raise ValueError(
            f"rate_limits intervals must be >= 0, got subscriber={subscriber}, store={store}"
        )

    return RateLimitConfig(
        subscriber_interval_seconds=subscriber,
        store_interval_seconds=store,
    )


def _build_auth_config(data: Optional[dict[str, Any]]) -> Optional[AuthConfig]:
    """Build an AuthConfig from the optional 'auth' section.

    Returns None when the section is absent, which disables test alerts.

    Raises:
        ValueError: If the section is present without a secret.
    """
    if not data:
        return None
    _validate_keys(data, ["jwt_secret"], "auth")

    secret = str(data["jwt_secret"])
    if not secret:
        raise ValueError("auth.jwt_secret must not be empty")

    return AuthConfig(jwt_secret=secret, algorithm=str(data.get("algorithm", "HS256")))


def _validate_keys(data: dict[str, Any], required: list[str], section: str) -> None:
    """Validate that all required keys exist in a config section.

    Raises:
        ValueError: If any required key is missing.
    """
    missing = [key for key in required if key not in data]
    if missing:
        raise ValueError(
            f"Missing required configuration keys in '{section}': {', '.join(missing)}"
        )


# ═══════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════


def load_config(
    settings_path: Path | None = None,
    env_path: Path | None = None,
) -> AppConfig:
    """Load the complete application configuration.

    Loads settings.yaml, resolves environment variables, validates all
    required fields, and returns a typed AppConfig instance.

    Args:
        settings_path: Override path to settings.yaml. Defaults to config/settings.yaml.
        env_path: Override path to .env file. Defaults to project root .env.

    Returns:
        A fully validated AppConfig instance.

    Raises:
        FileNotFoundError: If the config file is missing.
        ValueError: If required fields are missing, invalid, or env vars are unset.
    """
    env_file = env_path or (PROJECT_ROOT / ".env")
    load_dotenv(env_file)
    logger.debug("Loaded environment from %s", env_file)

    settings = _resolve_env_vars(_load_yaml(settings_path or SETTINGS_PATH))

    _validate_keys(
        settings, ["telegram", "schedule", "dashboard", "database", "logging"], "settings",
    )
    _validate_keys(settings["dashboard"], ["url"], "dashboard")
    _validate_keys(settings["database"], ["path"], "database")

    config = AppConfig(
        telegram=_build_telegram_config(settings["telegram"]),
        schedule=_build_schedule_config(settings["schedule"]),
        rate_limits=_build_rate_limit_config(settings.get("rate_limits") or {}),
        dashboard_url=str(settings["dashboard"]["url"]),
        database_path=str(settings["database"]["path"]),
        log_level=str(settings["logging"].get("level", "INFO")),
        auth=_build_auth_config(settings.get("auth")),
    )

    logger.info("Configuration loaded successfully")
    logger.debug("Database path: %s", config.database_path)
    logger.debug(
        "Daily alerts at %02d:%02d %s",
        config.schedule.hour, config.schedule.minute, config.schedule.timezone,
    )

    return config
