"""
Energy hub configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded store URLs or credentials.

CHANGELOG:
- 2026-10-17: Make channel set, TTL and window configurable (STORY-006)
- 2026-10-17: Initial creation (STORY-001)

TODO:
- None
"""

from datetime import timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings

from energyhub.src.channels import CHANNEL_CATALOG, DEFAULT_CHANNEL_KEYS


class HubSettings(BaseSettings):
    """Energy hub configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        store_base_url: Base URL of the realtime store (REST root, no
            trailing ``.json``).
        store_auth_token: Optional auth token appended as ``?auth=``.
        fetch_timeout_s: Upper bound for one telemetry fetch.
        cache_ttl_s: Lifetime of a cached dashboard snapshot.
        window_hours: Width of the "recent" window anchored at now.
        channels: Active telemetry channel keys (see channels.py).
        timezone: IANA zone in which timestamp-keys are written.
        redis_url: Redis URL for the snapshot mirror; empty disables it.
        snapshot_mirror_ttl_s: Expiry of the mirrored snapshot key.
        feed_max_backoff_s: Cap for change-feed reconnect backoff.
        subscriber_queue_size: Pending collections buffered per subscriber.
        feed_enabled: Run the device change feed (disable for read-only
            dashboard workers).
        log_level: Root log level.
        host: Bind address of the API server.
        port: Bind port of the API server.
    """

    store_base_url: str
    store_auth_token: str = ""
    fetch_timeout_s: float = 10.0
    cache_ttl_s: float = 60.0
    window_hours: float = 24.0
    channels: list[str] = list(DEFAULT_CHANNEL_KEYS)
    timezone: str = "UTC"
    redis_url: str = ""
    snapshot_mirror_ttl_s: int = 60
    feed_max_backoff_s: float = 60.0
    subscriber_queue_size: int = 16
    feed_enabled: bool = True
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def window(self) -> timedelta:
        """The recent window as a timedelta."""
        return timedelta(hours=self.window_hours)

    @property
    def tzinfo(self) -> ZoneInfo:
        """The configured timezone object."""
        return ZoneInfo(self.timezone)

    @field_validator("store_base_url")
    @classmethod
    def store_base_url_must_be_http(cls, v: str) -> str:
        """Validate the store URL scheme and strip a trailing slash."""
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(
                f"STORE_BASE_URL must be an http(s) URL (got: '{v[:20]}...')"
            )
        return v.rstrip("/")

    @field_validator("fetch_timeout_s", "cache_ttl_s", "window_hours", "feed_max_backoff_s")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        """Validate durations are strictly positive."""
        if v <= 0:
            raise ValueError("duration settings must be > 0")
        return v

    @field_validator("channels")
    @classmethod
    def channels_must_be_known(cls, v: list[str]) -> list[str]:
        """Validate every channel key exists in the catalog."""
        if not v:
            raise ValueError("CHANNELS must name at least one channel")
        unknown = [key for key in v if key not in CHANNEL_CATALOG]
        if unknown:
            raise ValueError(
                f"Unknown channel(s) {unknown}; known: {sorted(CHANNEL_CATALOG)}"
            )
        if len(set(v)) != len(v):
            raise ValueError("CHANNELS must not contain duplicates")
        return v

    @field_validator("timezone")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate the timezone is a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"TIMEZONE '{v}' is not a known IANA zone") from exc
        return v

    @field_validator("subscriber_queue_size")
    @classmethod
    def queue_size_must_be_valid(cls, v: int) -> int:
        """Validate subscriber queue size is at least 1."""
        if v < 1:
            raise ValueError("SUBSCRIBER_QUEUE_SIZE must be >= 1")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
