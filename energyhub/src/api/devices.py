"""
Device and room endpoints backed by the DeviceRegistry.

Reads are served from the registry's in-memory mirror. Writes go to the
store and return 202 once the store acknowledges them: the mirror, and the
``/v1/devices/stream`` event stream, reflect the change only when the change
feed echoes it back.

Store errors are mapped to HTTP statuses by the handlers registered in
main.py (404 unknown device, 409 rejected write, 503 store unavailable).

CHANGELOG:
- 2026-10-17: Add server-sent event stream of the device collection (STORY-020)
- 2026-10-17: Add room listing and rename (STORY-016)
- 2026-10-17: Initial creation (STORY-018)

TODO:
- None
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from energyhub.src.api.deps import Hub, Registry
from energyhub.src.hub import DeviceCollection, SubscriptionHub
from energyhub.src.models import Device, DeviceStatus, DeviceType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["devices"])

HEARTBEAT_S = 15.0
"""Seconds between keep-alive comments on an idle device stream."""

DeviceId = Annotated[str, Path(min_length=1)]


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------


class DeviceCreate(BaseModel):
    name: str = Field(min_length=1)
    type: DeviceType = DeviceType.OTHER
    room: str | None = None
    value: float | None = None


class DeviceUpdate(BaseModel):
    name: str | None = None
    room: str | None = None
    value: float | None = None
    status: DeviceStatus | None = None


class StateChange(BaseModel):
    state: bool


class RoomRename(BaseModel):
    old_room: str = Field(min_length=1)
    new_room: str = Field(min_length=1)


class RoomSummary(BaseModel):
    room: str
    total_devices: int
    online_devices: int
    active_devices: int


# ---------------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------------


def _encode_collection(devices: DeviceCollection) -> str:
    payload = [d.model_dump(mode="json", by_alias=True) for d in devices]
    return f"event: devices\ndata: {json.dumps(payload)}\n\n"


async def device_event_stream(
    request: Request,
    hub: SubscriptionHub,
    *,
    heartbeat_s: float = HEARTBEAT_S,
) -> AsyncIterator[str]:
    """Yield one SSE frame per device collection change.

    The current collection is sent first. Only the latest pending
    collection is kept for a slow client, since every frame carries the
    full collection. The subscription ends when the client disconnects.
    """
    pending: asyncio.Queue[DeviceCollection] = asyncio.Queue(maxsize=1)

    def _enqueue(devices: DeviceCollection) -> None:
        if pending.full():
            pending.get_nowait()
        pending.put_nowait(devices)

    unsubscribe = hub.subscribe(_enqueue)
    try:
        while not await request.is_disconnected():
            try:
                devices = await asyncio.wait_for(pending.get(), timeout=heartbeat_s)
            except TimeoutError:
                yield ": keep-alive\n\n"
                continue
            yield _encode_collection(devices)
    finally:
        unsubscribe()
        logger.debug("Device stream client disconnected")


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


@router.get("/devices")
async def list_devices(
    registry: Registry,
    room: str | None = None,
    type: DeviceType | None = None,  # noqa: A002
) -> list[Device]:
    """List mirrored devices, optionally filtered by room and/or type."""
    devices = registry.get_devices()
    if room is not None:
        devices = [d for d in devices if d.room == room]
    if type is not None:
        devices = [d for d in devices if d.type == type]
    return devices


@router.get("/devices/stream")
async def stream_devices(request: Request, hub: Hub) -> StreamingResponse:
    """Stream the device collection as server-sent events."""
    return StreamingResponse(
        device_event_stream(request, hub),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/devices/{device_id}")
async def get_device(device_id: DeviceId, registry: Registry) -> Device:
    """Return one mirrored device.

    Raises:
        HTTPException: 404 if the device is not in the mirror.
    """
    device = registry.get_device(device_id)
    if device is None:
        raise HTTPException(status_code=404, detail=f"Device '{device_id}' not found.")
    return device


@router.post("/devices", status_code=201)
async def create_device(body: DeviceCreate, registry: Registry) -> Device:
    """Create a device; it appears in the mirror once the feed echoes it."""
    try:
        return await registry.add(body.name, body.type, room=body.room, value=body.value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.delete("/devices/{device_id}")
async def delete_device(device_id: DeviceId, registry: Registry) -> dict[str, bool]:
    """Delete a device. ``removed`` is False when it did not exist."""
    return {"removed": await registry.remove(device_id)}


@router.put("/devices/{device_id}/state", status_code=202)
async def set_device_state(
    device_id: DeviceId, body: StateChange, registry: Registry
) -> dict[str, bool]:
    """Request a power state change; the mirror follows via the feed."""
    await registry.toggle(device_id, body.state)
    return {"accepted": True}


@router.patch("/devices/{device_id}", status_code=202)
async def update_device(
    device_id: DeviceId, body: DeviceUpdate, registry: Registry
) -> dict[str, bool]:
    """Partially update name, room, value, or status of a device."""
    fields = body.model_dump(exclude_unset=True)
    try:
        await registry.update_metadata(device_id, **fields)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"accepted": True}


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


@router.get("/rooms")
async def list_rooms(registry: Registry) -> list[RoomSummary]:
    """List rooms with their device counts."""
    summaries = []
    for room in registry.rooms():
        stats = registry.room_stats(room)
        summaries.append(
            RoomSummary(
                room=room,
                total_devices=stats.total_devices,
                online_devices=stats.online_devices,
                active_devices=stats.active_devices,
            )
        )
    return summaries


@router.post("/rooms/rename")
async def rename_room(body: RoomRename, registry: Registry) -> dict[str, int]:
    """Move every device of ``old_room`` into ``new_room``."""
    return {"updated": await registry.rename_room(body.old_room, body.new_room)}
