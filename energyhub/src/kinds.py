"""
Device kind capability table -- how each device type is created and toggled.

Each DeviceKind carries its default set-point and resolves its own store
paths, so the registry never branches on device type. All kinds share one
toggle policy: the authoritative power state lives at ``devices/<id>/state``
and the toggle bookkeeping node at ``devices/<id>/toggle``. Adding a device
type means adding one entry to :data:`DEVICE_KINDS`.

CHANGELOG:
- 2026-10-17: Unify toggle paths under devices/<id>/toggle (STORY-010)
- 2026-10-17: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass

from energyhub.src.models import DeviceType

DEVICES_ROOT = "devices"

TOGGLE_HISTORY_LIMIT = 100
"""Toggle history entries kept per device; the oldest is pruned beyond this."""


def device_path(device_id: str) -> str:
    """Store path of a device node."""
    return f"{DEVICES_ROOT}/{device_id}"


@dataclass(frozen=True, slots=True)
class DeviceKind:
    """Capabilities of one device type.

    Attributes:
        type: The device type this kind describes.
        label: Human-readable type label.
        default_value: Set-point assigned on creation, or None when the
            type has no set-point.
        toggle_node: Name of the toggle bookkeeping child node.
    """

    type: DeviceType
    label: str
    default_value: float | None = None
    toggle_node: str = "toggle"

    def toggle_path(self, device_id: str) -> str:
        """Store path of the device's toggle bookkeeping node."""
        return f"{device_path(device_id)}/{self.toggle_node}"

    def initial_toggle_node(self, now_ms: int) -> dict:
        """Toggle node written when the device is created."""
        return {"state": False, "lastToggle": now_ms, "toggleCount": 0}

    def toggle_updates(self, state: bool, now_ms: int, toggle_count: int) -> dict:
        """Multi-path update applied to the device node for a toggle.

        Args:
            state: Requested power state.
            now_ms: Current time in epoch milliseconds.
            toggle_count: Toggle count currently stored.

        Returns:
            dict: Relative path -> value, suitable for a PATCH of the
            device node.
        """
        node = self.toggle_node
        return {
            "state": state,
            "lastUpdated": now_ms,
            f"{node}/state": state,
            f"{node}/lastToggle": now_ms,
            f"{node}/toggleCount": toggle_count + 1,
            f"{node}/history/{now_ms}": {
                "state": state,
                "timestamp": now_ms,
                "action": "ON" if state else "OFF",
            },
        }


DEVICE_KINDS: dict[DeviceType, DeviceKind] = {
    kind.type: kind
    for kind in (
        DeviceKind(DeviceType.LIGHT, "Light", default_value=100),
        DeviceKind(DeviceType.FAN, "Fan", default_value=100),
        DeviceKind(DeviceType.AC, "Air Conditioner", default_value=24),
        DeviceKind(DeviceType.GEYSER, "Geyser", default_value=45),
        DeviceKind(DeviceType.REFRIGERATOR, "Refrigerator"),
        DeviceKind(DeviceType.THERMOSTAT, "Smart Thermostat"),
        DeviceKind(DeviceType.ENERGY_METER, "Energy Meter"),
        DeviceKind(DeviceType.SECURITY_CAMERA, "Security Camera"),
        DeviceKind(DeviceType.SMART_PLUG, "Smart Plug"),
        DeviceKind(DeviceType.OTHER, "Other"),
    )
}


def kind_for(device_type: DeviceType | str) -> DeviceKind:
    """Return the DeviceKind for a type, falling back to ``other``.

    Raises:
        ValueError: If *device_type* is a string that is not a DeviceType.
    """
    return DEVICE_KINDS.get(DeviceType(device_type), DEVICE_KINDS[DeviceType.OTHER])
