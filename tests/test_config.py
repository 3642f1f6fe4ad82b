import logging
from pathlib import Path

import pytest

from worktimer.config import load_config


@pytest.fixture
def base_env(monkeypatch):
    for name in ("DEFAULT_TIMEZONE", "DATABASE_PATH", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.setenv("GUILD_ID", "1234")
    return monkeypatch


def test_defaults(base_env) -> None:
    config = load_config()

    assert config.discord_token == "token"
    assert config.guild_id == 1234
    assert config.default_timezone.key == "UTC"
    assert config.database_path == Path("work_timer.db")
    assert config.log_level == logging.INFO


def test_overrides(base_env) -> None:
    base_env.setenv("DEFAULT_TIMEZONE", "Europe/Berlin")
    base_env.setenv("DATABASE_PATH", "/tmp/timer.db")
    base_env.setenv("LOG_LEVEL", "debug")

    config = load_config()

    assert config.default_timezone.key == "Europe/Berlin"
    assert config.database_path == Path("/tmp/timer.db")
    assert config.log_level == logging.DEBUG


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("GUILD_ID", "abc", "GUILD_ID must be an integer"),
        ("GUILD_ID", "-5", "GUILD_ID must be positive"),
        ("DEFAULT_TIMEZONE", "Nowhere/Special", "Invalid timezone in DEFAULT_TIMEZONE"),
        ("LOG_LEVEL", "LOUD", "Invalid log level in LOG_LEVEL"),
    ],
)
def test_invalid_values(base_env, name, value, message) -> None:
    base_env.setenv(name, value)

    with pytest.raises(ValueError, match=message):
        load_config()


def test_missing_token(base_env) -> None:
    base_env.delenv("DISCORD_TOKEN")

    with pytest.raises(ValueError, match="DISCORD_TOKEN"):
        load_config()
