"""
Health check endpoint for the energy hub API.

Provides a simple GET /health endpoint that returns ``{"status": "ok"}`` with
HTTP 200, plus whether the device mirror has received its first change-feed
event. No authentication is required -- this is intended for Docker
HEALTHCHECK and internal monitoring only.

CHANGELOG:
- 2026-10-17: Report device mirror sync state (STORY-017)
- 2026-10-17: Initial creation (STORY-012)

TODO:
- None
"""

from fastapi import APIRouter

from energyhub.src.api.deps import Registry

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(registry: Registry) -> dict:
    """Return a simple health status.

    Returns:
        dict: ``{"status": "ok", "devices_synced": bool}``.
    """
    return {"status": "ok", "devices_synced": registry.synced}
