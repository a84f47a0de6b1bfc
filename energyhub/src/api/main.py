"""
FastAPI application entry point for the energy hub API.

The lifespan builds one shared httpx client, the single-flight dashboard
cache, the device store, the subscription hub, and the device registry, and
stores them on ``app.state`` for route handlers. When enabled, the device
change feed runs as a background task until shutdown.

Structured JSON logging is configured at startup; the store auth token is
only ever logged as a fingerprint.

CHANGELOG:
- 2026-10-17: Register devices and rooms routers (STORY-018)
- 2026-10-17: Register dashboard router (STORY-012)
- 2026-10-17: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from functools import partial

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from energyhub.src.activity import ActivitySink
from energyhub.src.api.dashboard import router as dashboard_router
from energyhub.src.api.devices import router as devices_router
from energyhub.src.api.health import router as health_router
from energyhub.src.cache import AggregateCache, mirror_snapshot
from energyhub.src.channels import resolve_channels
from energyhub.src.config import HubSettings
from energyhub.src.errors import DeviceNotFoundError, TransientFetchError, WriteRejectedError
from energyhub.src.fetcher import RawSeriesFetcher
from energyhub.src.hub import SubscriptionHub
from energyhub.src.registry import DeviceRegistry
from energyhub.src.store import DeviceStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class _JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger.

    Args:
        level: Root log level name, e.g. ``"INFO"`` or ``"DEBUG"``.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: HubSettings) -> None:
    """Log a config summary at startup, excluding secrets."""
    logger.info(
        "Energy hub starting with config: "
        "store_base_url=%s, channels=%s, cache_ttl_s=%s, window_hours=%s, "
        "fetch_timeout_s=%s, timezone=%s, redis_mirror=%s, feed_enabled=%s, "
        "store_token_masked=%s",
        settings.store_base_url,
        ",".join(settings.channels),
        settings.cache_ttl_s,
        settings.window_hours,
        settings.fetch_timeout_s,
        settings.timezone,
        "on" if settings.redis_url else "off",
        settings.feed_enabled,
        _masked_token(settings.store_auth_token),
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build components on startup, drain on shutdown.

    Startup:
        - Loads and validates HubSettings.
        - Builds the cache, registry, and hub and stores them on app.state.
        - Starts the device change feed when enabled.

    Shutdown:
        - Stops the change feed, closes the hub, waits for pending
          background writes, and closes the HTTP client.
    """
    settings = HubSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    client = httpx.AsyncClient()
    fetcher = RawSeriesFetcher(
        client,
        settings.store_base_url,
        auth_token=settings.store_auth_token,
        timeout_s=settings.fetch_timeout_s,
    )
    mirror = (
        partial(mirror_snapshot, settings.redis_url, ttl_s=settings.snapshot_mirror_ttl_s)
        if settings.redis_url
        else None
    )
    cache = AggregateCache(
        fetcher,
        channels=resolve_channels(settings.channels),
        ttl_s=settings.cache_ttl_s,
        window=settings.window,
        fetch_timeout_s=settings.fetch_timeout_s,
        tz=settings.tzinfo,
        mirror=mirror,
    )

    store = DeviceStore(
        client,
        settings.store_base_url,
        auth_token=settings.store_auth_token,
        timeout_s=settings.fetch_timeout_s,
    )
    hub = SubscriptionHub(queue_size=settings.subscriber_queue_size)
    activity = ActivitySink(store)
    registry = DeviceRegistry(store, hub, activity=activity)

    app.state.settings = settings
    app.state.cache = cache
    app.state.hub = hub
    app.state.registry = registry

    shutdown_event = asyncio.Event()
    feed_task: asyncio.Task[None] | None = None
    if settings.feed_enabled:
        feed_task = asyncio.create_task(
            registry.run_feed(shutdown_event, max_backoff_s=settings.feed_max_backoff_s),
            name="device-change-feed",
        )

    logger.info("Energy hub API ready")
    try:
        yield
    finally:
        logger.info("Energy hub API shutting down")
        shutdown_event.set()
        if feed_task is not None:
            feed_task.cancel()
            await asyncio.gather(feed_task, return_exceptions=True)
        await hub.close()
        await activity.close()
        await cache.close()
        await client.aclose()


app = FastAPI(
    title="Energy Hub API",
    description="Cached energy dashboard aggregates and device control.",
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
)

app.include_router(health_router)
app.include_router(dashboard_router)
app.include_router(devices_router)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(DeviceNotFoundError)
async def _device_not_found(request: Request, exc: DeviceNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(WriteRejectedError)
async def _write_rejected(request: Request, exc: WriteRejectedError) -> JSONResponse:
    logger.warning("Store rejected write for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(TransientFetchError)
async def _store_unavailable(request: Request, exc: TransientFetchError) -> JSONResponse:
    logger.warning("Store unavailable for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Device store unavailable"})


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    settings = HubSettings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
