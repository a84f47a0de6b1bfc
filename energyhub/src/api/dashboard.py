"""
GET /v1/dashboard endpoint serving the cached energy dashboard snapshot.

The snapshot comes from the single-flight AggregateCache: concurrent
requests during a refresh share one pipeline run, and a failed run yields
the all-zero fallback snapshot, so this endpoint always answers 200.

CHANGELOG:
- 2026-10-17: Add cache invalidation endpoint (STORY-019)
- 2026-10-17: Initial creation (STORY-012)

TODO:
- None
"""

import logging

from fastapi import APIRouter

from energyhub.src.api.deps import Cache, Settings
from energyhub.src.cache import invalidate_snapshot_mirror
from energyhub.src.models import Snapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["dashboard"])


@router.get("/dashboard")
async def dashboard(cache: Cache) -> Snapshot:
    """Return the current dashboard snapshot.

    Returns:
        Snapshot: Cached, freshly computed, or fallback snapshot. The
        ``is_fallback`` flag tells clients which one they received.
    """
    return await cache.get()


@router.post("/dashboard/invalidate")
async def invalidate_dashboard(cache: Cache, settings: Settings) -> dict[str, str]:
    """Drop the cached snapshot so the next read recomputes it.

    Also removes the Redis mirror key when the mirror is configured.

    Returns:
        dict: ``{"status": "invalidated"}``.
    """
    cache.invalidate()
    if settings.redis_url:
        await invalidate_snapshot_mirror(settings.redis_url)
    return {"status": "invalidated"}
