"""
Shared test fixtures for energy hub tests.

All hub env vars are cleaned before each test to ensure isolation, and the
working directory is moved to a temp dir so no .env file is picked up by
Pydantic BaseSettings.

CHANGELOG:
- 2026-10-17: Add raw state and channel fixtures (STORY-008)
- 2026-10-17: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from energyhub.src.channels import ChannelSpec, resolve_channels

# All HubSettings environment variable names, used for cleanup.
_ALL_HUB_ENV_VARS = (
    "STORE_BASE_URL",
    "STORE_AUTH_TOKEN",
    "FETCH_TIMEOUT_S",
    "CACHE_TTL_S",
    "WINDOW_HOURS",
    "CHANNELS",
    "TIMEZONE",
    "REDIS_URL",
    "SNAPSHOT_MIRROR_TTL_S",
    "FEED_MAX_BACKOFF_S",
    "SUBSCRIBER_QUEUE_SIZE",
    "FEED_ENABLED",
    "LOG_LEVEL",
    "HOST",
    "PORT",
)


@pytest.fixture(autouse=True)
def _clean_hub_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all hub env vars and isolate from .env files before each test."""
    for var in _ALL_HUB_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {"STORE_BASE_URL": "https://home.example.com"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def now() -> datetime:
    """Fixed pipeline anchor: 2026-10-17 12:00 UTC."""
    return datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


@pytest.fixture()
def ac_fan() -> tuple[ChannelSpec, ...]:
    """The two-channel (AC + fan) configuration."""
    return resolve_channels(["ac", "fan"])


@pytest.fixture()
def all_channels() -> tuple[ChannelSpec, ...]:
    """Every default channel."""
    return resolve_channels(["ac", "fan", "light", "refrigerator"])


@pytest.fixture()
def raw_state() -> dict:
    """A raw store tree with AC and fan readings inside the default window."""
    return {
        "ac_power_logs": {"2026-10-17_10-00": 1200, "2026-10-17_10-01": 1300},
        "power_logs": {"2026-10-17_10-00": 50, "2026-10-17_10-02": 60},
        "fan_state": True,
        "motion_detected": True,
    }
