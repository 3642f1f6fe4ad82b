from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_DB_PATH = "work_timer.db"


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    default_timezone: ZoneInfo
    database_path: Path
    log_level: int


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _required_int_env(name: str) -> int:
    value = _required_env(name)
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _timezone_from_env(name: str, default: str) -> ZoneInfo:
    tz_name = (os.getenv(name) or default).strip()
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def _log_level_from_env(name: str, default: str) -> int:
    level_name = (os.getenv(name) or default).strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level in {name}: {level_name}")
    return level


def load_config() -> Config:
    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        default_timezone=_timezone_from_env("DEFAULT_TIMEZONE", "UTC"),
        database_path=Path((os.getenv("DATABASE_PATH") or DEFAULT_DB_PATH).strip()),
        log_level=_log_level_from_env("LOG_LEVEL", "INFO"),
    )
