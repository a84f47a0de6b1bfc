"""
In-memory mirror of the store's ``devices`` node, kept current by the change feed.

Write operations (add, remove, toggle, metadata updates) go to the store and
return once the store acknowledges them. None of them mutate the mirror:
the mirrored collection changes only when the change feed delivers the new
value, so a toggle becomes visible to the registry, and to every
subscriber, asynchronously. Write failures propagate to the caller; the
mirror keeps whatever it last held.

The feed runner is the single writer of the mirror. Each event is applied
to a private copy of the raw tree, the Device tuple is rebuilt, and both
references are swapped together; readers never see a partially applied
event. When the collection actually changed, the SubscriptionHub fans it
out once.

CHANGELOG:
- 2026-10-17: Type-check metadata updates before writing (STORY-021)
- 2026-10-17: Add room queries, rename, and status updates (STORY-016)
- 2026-10-17: Add change-feed runner with reconnect backoff (STORY-017)
- 2026-10-17: Initial creation (STORY-014)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import secrets
import string
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from energyhub.src.errors import DeviceNotFoundError, EnergyHubError
from energyhub.src.kinds import DEVICES_ROOT, TOGGLE_HISTORY_LIMIT, device_path, kind_for
from energyhub.src.models import DEFAULT_ROOM, Device, DeviceStatus, DeviceType
from energyhub.src.store import StoreEvent, apply_store_event

if TYPE_CHECKING:
    from energyhub.src.activity import ActivitySink
    from energyhub.src.hub import DeviceCollection, SubscriptionHub
    from energyhub.src.store import DeviceStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BASE_BACKOFF_S: float = 1.0
"""Initial reconnect delay after the change feed drops."""

DEFAULT_MAX_BACKOFF_S: float = 60.0
"""Cap for the exponential reconnect delay."""

UPDATABLE_FIELDS = frozenset({"name", "room", "value", "status"})

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_device_id(now_ms: int) -> str:
    """Build a ``device_<ms>_<9 random base36 chars>`` identifier."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"device_{now_ms}_{suffix}"


@dataclass(frozen=True)
class RoomStats:
    """Device counts for one room."""

    total_devices: int
    online_devices: int
    active_devices: int


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _coerce_type(value: Any) -> DeviceType:
    try:
        return DeviceType(value)
    except ValueError:
        return DeviceType.OTHER


def parse_device(device_id: str, node: Any) -> Device | None:
    """Build a Device from its raw store node, or None if it is malformed."""
    if not isinstance(node, dict):
        logger.warning("Device '%s': node is %s, skipping", device_id, type(node).__name__)
        return None
    try:
        return Device.model_validate(
            {
                "id": device_id,
                "name": node.get("name"),
                "type": _coerce_type(node.get("type")),
                "room": node.get("room") or DEFAULT_ROOM,
                "status": node.get("status") or DeviceStatus.ONLINE,
                "state": node.get("state") is True,
                "value": node.get("value"),
                "lastUpdated": node.get("lastUpdated") or 0,
            }
        )
    except ValidationError as exc:
        logger.warning(
            "Device '%s': malformed node (%d error(s)), skipping",
            device_id,
            exc.error_count(),
        )
        return None


def parse_devices(tree: Any) -> DeviceCollection:
    """Build the sorted Device tuple from the raw ``devices`` node."""
    if not isinstance(tree, dict):
        return ()
    devices = (parse_device(str(device_id), node) for device_id, node in tree.items())
    return tuple(sorted((d for d in devices if d is not None), key=lambda d: d.id))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class DeviceRegistry:
    """Mirror of the device collection with store-backed write operations.

    Args:
        store: Device store client.
        hub: Hub notified when the mirrored collection changes.
        activity: Optional fire-and-forget activity sink.
        clock_ms: Epoch-milliseconds clock.
        id_factory: Builds a new device id from the current time.
    """

    def __init__(
        self,
        store: DeviceStore,
        hub: SubscriptionHub,
        *,
        activity: ActivitySink | None = None,
        clock_ms: Callable[[], int] = _now_ms,
        id_factory: Callable[[int], str] = new_device_id,
    ) -> None:
        self._store = store
        self._hub = hub
        self._activity = activity
        self._clock_ms = clock_ms
        self._id_factory = id_factory
        self._tree: Any = None
        self._devices: DeviceCollection = ()
        self._synced = asyncio.Event()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def devices(self) -> DeviceCollection:
        """The current immutable device collection."""
        return self._devices

    @property
    def synced(self) -> bool:
        """True once the change feed delivered its first event."""
        return self._synced.is_set()

    async def wait_synced(self, timeout: float | None = None) -> bool:
        """Wait for the first change-feed event. Returns False on timeout."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        return self._synced.is_set()

    def get_devices(self) -> list[Device]:
        return list(self._devices)

    def get_device(self, device_id: str) -> Device | None:
        return next((d for d in self._devices if d.id == device_id), None)

    def devices_by_type(self, device_type: DeviceType | str) -> list[Device]:
        return [d for d in self._devices if d.type == device_type]

    def devices_by_room(self, room: str) -> list[Device]:
        return [d for d in self._devices if d.room == room]

    def rooms(self) -> list[str]:
        """Sorted unique room labels."""
        return sorted({d.room for d in self._devices})

    def room_stats(self, room: str) -> RoomStats:
        in_room = self.devices_by_room(room)
        return RoomStats(
            total_devices=len(in_room),
            online_devices=sum(1 for d in in_room if d.status == DeviceStatus.ONLINE),
            active_devices=sum(1 for d in in_room if d.state),
        )

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    async def add(
        self,
        name: str,
        device_type: DeviceType | str,
        room: str | None = None,
        value: float | None = None,
    ) -> Device:
        """Create a device in the store and return it once acknowledged.

        The device starts powered off and online, with the kind's default
        set-point unless *value* is given. The mirror picks it up when the
        change feed echoes the write.

        Raises:
            ValueError: For an empty name or unknown device type.
            WriteRejectedError: If the store rejects the write.
            TransientFetchError: If the store cannot be reached.
        """
        name = name.strip()
        if not name:
            raise ValueError("Device name must not be empty")
        kind = kind_for(device_type)
        now = self._clock_ms()

        device = Device(
            id=self._id_factory(now),
            name=name,
            type=kind.type,
            room=(room or "").strip() or DEFAULT_ROOM,
            status=DeviceStatus.ONLINE,
            state=False,
            value=value if value is not None else kind.default_value,
            last_updated=now,
        )
        node = device.model_dump(mode="json", by_alias=True, exclude={"id"}, exclude_none=True)
        node[kind.toggle_node] = kind.initial_toggle_node(now)

        await self._store.put(device_path(device.id), node)
        logger.info("Device added: %s (%s) in %s as %s", name, kind.type, device.room, device.id)
        self._record("device_added", device_id=device.id, name=name, type=str(kind.type))
        return device

    async def remove(self, device_id: str) -> bool:
        """Delete a device from the store.

        Returns:
            bool: True if the device existed and was deleted, False if it
            did not exist.

        Raises:
            WriteRejectedError: If the store rejects the delete.
            TransientFetchError: If the store cannot be reached.
        """
        path = device_path(device_id)
        if await self._store.get(path) is None:
            logger.warning("Remove requested for unknown device %s", device_id)
            return False
        await self._store.delete(path)
        logger.info("Device removed: %s", device_id)
        self._record("device_removed", device_id=device_id)
        return True

    async def toggle(self, device_id: str, state: bool) -> None:
        """Write a new power state for a device.

        The mirror is not touched; the new state arrives through the change
        feed. The toggle node's count and history are updated in the same
        write, and the oldest history entry is pruned once the history
        holds :data:`TOGGLE_HISTORY_LIMIT` entries.

        ``toggleCount`` is read then written back incremented, and the store
        offers no atomic increment, so concurrent toggles of one device can
        lose counts. The count is advisory; ``state`` is always the value
        of the last acknowledged write.

        Raises:
            DeviceNotFoundError: If the device does not exist.
            WriteRejectedError: If the store rejects the write.
            TransientFetchError: If the store cannot be reached.
        """
        node = await self._store.get(device_path(device_id))
        if not isinstance(node, dict):
            raise DeviceNotFoundError(device_id)

        kind = kind_for(_coerce_type(node.get("type")))
        toggle = node.get(kind.toggle_node)
        toggle = toggle if isinstance(toggle, dict) else {}
        count = toggle.get("toggleCount")
        count = count if isinstance(count, int) and not isinstance(count, bool) else 0
        history = toggle.get("history")
        history = history if isinstance(history, dict) else {}

        now = self._clock_ms()
        await self._store.patch(device_path(device_id), kind.toggle_updates(state, now, count))
        logger.info("Device %s toggle requested: %s", device_id, "ON" if state else "OFF")

        if len(history) >= TOGGLE_HISTORY_LIMIT:
            oldest = min(history, key=_history_key)
            try:
                await self._store.delete(f"{kind.toggle_path(device_id)}/history/{oldest}")
            except EnergyHubError:
                logger.warning("Failed to prune toggle history of %s", device_id, exc_info=True)

        self._record("device_toggled", device_id=device_id, state=state)

    async def update_metadata(self, device_id: str, **fields: Any) -> None:
        """Partially update name, room, value, or status of a device.

        Like :meth:`toggle`, the mirror only changes when the feed confirms.

        Name and room must be strings; an empty room means the default
        room. ``value`` must be None or a finite number, so the feed echo
        always parses back into a Device.

        Raises:
            ValueError: For unknown fields, a missing or empty name, a
                non-string room, a non-numeric value, or a bad status.
            DeviceNotFoundError: If the device does not exist.
            WriteRejectedError: If the store rejects the write.
            TransientFetchError: If the store cannot be reached.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {sorted(unknown)}")
        if not fields:
            raise ValueError("No fields to update")

        updates: dict[str, Any] = {}
        if "name" in fields:
            name = fields["name"]
            if not isinstance(name, str) or not name.strip():
                raise ValueError("Device name must be a non-empty string")
            updates["name"] = name.strip()
        if "room" in fields:
            room = fields["room"]
            if not isinstance(room, str):
                raise ValueError("Device room must be a string")
            updates["room"] = room.strip() or DEFAULT_ROOM
        if "value" in fields:
            updates["value"] = _checked_value(fields["value"])
        if "status" in fields:
            updates["status"] = str(DeviceStatus(fields["status"]))

        path = device_path(device_id)
        if await self._store.get(path) is None:
            raise DeviceNotFoundError(device_id)

        updates["lastUpdated"] = self._clock_ms()
        await self._store.patch(path, updates)
        logger.info("Device %s update requested: %s", device_id, sorted(fields))
        self._record("device_updated", device_id=device_id, fields=sorted(fields))

    async def set_status(self, device_id: str, status: DeviceStatus | str) -> None:
        """Mark a device online or offline."""
        await self.update_metadata(device_id, status=status)

    async def rename_room(self, old_room: str, new_room: str) -> int:
        """Move every mirrored device in *old_room* to *new_room*.

        Returns:
            int: Number of devices whose update the store acknowledged.
        """
        targets = self.devices_by_room(old_room)
        if not targets:
            return 0
        results = await asyncio.gather(
            *(self.update_metadata(d.id, room=new_room) for d in targets),
            return_exceptions=True,
        )
        failed = [d.id for d, r in zip(targets, results) if isinstance(r, BaseException)]
        if failed:
            logger.warning("Room rename %r -> %r failed for %s", old_room, new_room, failed)
        return len(targets) - len(failed)

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def apply_event(self, event: StoreEvent) -> bool:
        """Apply one change-feed event to the mirror.

        Returns:
            bool: True if subscribers were notified.
        """
        try:
            tree = apply_store_event(self._tree, event)
        except EnergyHubError:
            logger.warning("Ignoring unusable %s event at %s", event.event, event.path, exc_info=True)
            return False

        devices = parse_devices(tree)
        first = not self._synced.is_set()
        changed = devices != self._devices
        self._tree, self._devices = tree, devices
        self._synced.set()

        if changed or first:
            logger.info("Device collection updated: %d device(s)", len(devices))
            self._hub.publish(devices)
            return True
        return False

    async def run_feed(
        self,
        shutdown_event: asyncio.Event,
        *,
        max_backoff_s: float = DEFAULT_MAX_BACKOFF_S,
    ) -> None:
        """Consume the change feed until *shutdown_event* is set.

        Reconnects after any failure with exponential backoff, reset by
        every received event. Never raises except on cancellation.
        """
        logger.info("Device change feed started")
        failures = 0
        while not shutdown_event.is_set():
            if failures > 0:
                delay = min(BASE_BACKOFF_S * (2 ** (failures - 1)), max_backoff_s)
                logger.warning(
                    "Backoff: reconnecting change feed in %.1fs (consecutive failures: %d)",
                    delay,
                    failures,
                )
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(shutdown_event.wait(), timeout=delay)
                if shutdown_event.is_set():
                    break

            try:
                async for event in self._store.listen(DEVICES_ROOT):
                    failures = 0
                    self.apply_event(event)
                    if shutdown_event.is_set():
                        break
                else:
                    logger.warning("Change feed ended by store")
                    failures += 1
            except EnergyHubError as exc:
                logger.warning("Change feed error: %s", exc)
                failures += 1
            except Exception:
                logger.error("Unexpected change feed error", exc_info=True)
                failures += 1
        logger.info("Device change feed stopped")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _record(self, action: str, **details: Any) -> None:
        if self._activity is not None:
            self._activity.record(action, **details)


def _checked_value(value: Any) -> float | None:
    """Validate a set-point: None, or a finite int/float that is not a bool."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Device value must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValueError("Device value must be finite")
    return value


def _history_key(key: str) -> tuple[int, str]:
    """Sort toggle history keys numerically, non-numeric keys last."""
    try:
        return (int(key), key)
    except ValueError:
        return (2**63, key)
