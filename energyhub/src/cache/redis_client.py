"""
Redis client for the dashboard snapshot mirror.

Publishes every freshly computed Snapshot under a well-known key so that
other readers (a second API worker, a kiosk renderer) can pick up the latest
dashboard without hitting the realtime store. The mirror is best-effort:
connection failures are logged but do not propagate exceptions, and the
in-process AggregateCache stays the source of truth.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-011)
"""

import logging

import redis.asyncio as redis

from energyhub.src.models import Snapshot

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "dashboard:snapshot"


async def get_redis(url: str) -> redis.Redis:
    """Create and return an async Redis client for *url*.

    Args:
        url: Redis connection URL, e.g. ``redis://localhost:6379/0``.

    Returns:
        redis.Redis: Async Redis client.
    """
    return redis.from_url(url)


async def mirror_snapshot(url: str, snapshot: Snapshot, *, ttl_s: int) -> None:
    """Write *snapshot* as JSON under :data:`SNAPSHOT_KEY` with a TTL.

    Best-effort operation: if Redis is unavailable or the write fails,
    the error is logged but not raised.

    Args:
        url: Redis connection URL.
        snapshot: The snapshot to publish.
        ttl_s: Key expiry in seconds.
    """
    try:
        client = await get_redis(url)
        try:
            await client.set(SNAPSHOT_KEY, snapshot.model_dump_json(), ex=ttl_s)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Failed to mirror snapshot to Redis", exc_info=True)


async def invalidate_snapshot_mirror(url: str) -> None:
    """Delete the mirrored snapshot key.

    Best-effort operation: failures are logged, never raised.

    Args:
        url: Redis connection URL.
    """
    try:
        client = await get_redis(url)
        try:
            await client.delete(SNAPSHOT_KEY)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Failed to invalidate mirrored snapshot", exc_info=True)
