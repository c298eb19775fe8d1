"""Unit tests for environment-driven settings.

Tests verify:
- Defaults when nothing is configured
- Pool size fallback for invalid overrides
- Optional pool and execute timeouts
- Singleton behavior of get_settings()
"""

import pytest

# Import directly from settings module to keep the cache under test control
from safe_warehouse.config.settings import Settings, get_settings


@pytest.mark.unit
def test_defaults_without_environment():
    settings = Settings(_env_file=None)

    assert settings.SNOWFLAKE_CREDENTIALS is None
    assert settings.SNOWFLAKE_POOL_MAX == 1
    assert settings.SNOWFLAKE_POLL_INTERVAL_MS == 100
    assert settings.poll_interval_seconds == pytest.approx(0.1)
    assert settings.SNOWFLAKE_POOL_TIMEOUT is None
    assert settings.SNOWFLAKE_EXECUTE_TIMEOUT is None
    assert settings.VERBOSE is False


@pytest.mark.unit
def test_credentials_are_read_from_environment(monkeypatch):
    monkeypatch.setenv("SNOWFLAKE_CREDENTIALS", "account:xy,username:u")

    assert Settings(_env_file=None).SNOWFLAKE_CREDENTIALS == "account:xy,username:u"


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw, expected",
    [("4", 4), (" 2 ", 2), ("0", 1), ("-3", 1), ("lots", 1), ("", 1)],
)
def test_pool_max_override(monkeypatch, raw, expected):
    monkeypatch.setenv("SNOWFLAKE_POOL_MAX", raw)

    assert Settings(_env_file=None).SNOWFLAKE_POOL_MAX == expected


@pytest.mark.unit
def test_execute_timeout_override(monkeypatch):
    monkeypatch.setenv("SNOWFLAKE_EXECUTE_TIMEOUT", "30")
    assert Settings(_env_file=None).SNOWFLAKE_EXECUTE_TIMEOUT == 30.0

    monkeypatch.setenv("SNOWFLAKE_EXECUTE_TIMEOUT", "")
    assert Settings(_env_file=None).SNOWFLAKE_EXECUTE_TIMEOUT is None


@pytest.mark.unit
def test_pool_timeout_override(monkeypatch):
    monkeypatch.setenv("SNOWFLAKE_POOL_TIMEOUT", "12.5")
    assert Settings(_env_file=None).SNOWFLAKE_POOL_TIMEOUT == 12.5

    monkeypatch.setenv("SNOWFLAKE_POOL_TIMEOUT", " ")
    assert Settings(_env_file=None).SNOWFLAKE_POOL_TIMEOUT is None


@pytest.mark.unit
def test_verbose_flag(monkeypatch):
    monkeypatch.setenv("VERBOSE", "1")

    assert Settings(_env_file=None).VERBOSE is True


@pytest.mark.unit
def test_get_settings_is_cached(monkeypatch):
    get_settings.cache_clear()
    monkeypatch.setenv("SNOWFLAKE_POOL_MAX", "3")

    first = get_settings()
    monkeypatch.setenv("SNOWFLAKE_POOL_MAX", "5")

    assert get_settings() is first
    assert first.SNOWFLAKE_POOL_MAX == 3

    get_settings.cache_clear()
