"""
FastAPI dependency providers.

Resolve the long-lived components built by the application lifespan from
``app.state`` so route handlers can receive them through ``Depends()`` and
tests can replace them with ``app.dependency_overrides``.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-012)
"""

from typing import Annotated

from fastapi import Depends, Request

from energyhub.src.cache import AggregateCache
from energyhub.src.config import HubSettings
from energyhub.src.hub import SubscriptionHub
from energyhub.src.registry import DeviceRegistry


def get_settings(request: Request) -> HubSettings:
    return request.app.state.settings


def get_cache(request: Request) -> AggregateCache:
    return request.app.state.cache


def get_registry(request: Request) -> DeviceRegistry:
    return request.app.state.registry


def get_hub(request: Request) -> SubscriptionHub:
    return request.app.state.hub


# Type aliases for injecting components via FastAPI Depends().
# Usage in route handlers:
#   async def my_route(cache: Cache):
#       snapshot = await cache.get()
Settings = Annotated[HubSettings, Depends(get_settings)]
Cache = Annotated[AggregateCache, Depends(get_cache)]
Registry = Annotated[DeviceRegistry, Depends(get_registry)]
Hub = Annotated[SubscriptionHub, Depends(get_hub)]
