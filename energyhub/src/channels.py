"""
Telemetry channel catalog -- single source of truth for per-appliance logs.

Each channel is one appliance's power-reading time series stored somewhere in
the realtime store's raw state tree. The catalog records where the log lives
(the node path), the fixed benchmark wattage shown next to it on charts, and
the display color used in the usage breakdown.

The active channel set is configuration (``HubSettings.channels``), so a
deployment that names the refrigerator log differently, or has no
refrigerator at all, only changes the selection -- not the merge code.

CHANGELOG:
- 2026-10-17: Add refrigerator channel (STORY-006)
- 2026-10-17: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChannelSpec:
    """Definition of a single telemetry channel.

    Attributes:
        key: Unique identifier used as the channel key in EnergyRecords.
        label: Display label used in the usage breakdown.
        path: Node path of the channel's RawLog inside the raw state tree,
            e.g. ``("lights", "power_logs")`` for ``/lights/power_logs``.
        benchmark_w: Fixed reference wattage for chart comparison. Never
            computed from data.
        color: Display color of the channel in the usage breakdown.
    """

    key: str
    label: str
    path: tuple[str, ...]
    benchmark_w: float
    color: str


CHANNEL_CATALOG: dict[str, ChannelSpec] = {
    spec.key: spec
    for spec in (
        ChannelSpec(
            key="ac",
            label="AC",
            path=("ac_power_logs",),
            benchmark_w=2500.0,
            color="#3b82f6",
        ),
        ChannelSpec(
            key="fan",
            label="Fan",
            path=("power_logs",),
            benchmark_w=500.0,
            color="#f59e0b",
        ),
        ChannelSpec(
            key="light",
            label="Lighting",
            path=("lights", "power_logs"),
            benchmark_w=300.0,
            color="#8b5cf6",
        ),
        ChannelSpec(
            key="refrigerator",
            label="Refrigerator",
            path=("refrigerator", "power_logs"),
            benchmark_w=200.0,
            color="#06b6d4",
        ),
    )
}
"""Every channel known to the hub, keyed by channel key."""

DEFAULT_CHANNEL_KEYS: tuple[str, ...] = ("ac", "fan", "light", "refrigerator")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def resolve_channels(keys: Iterable[str]) -> tuple[ChannelSpec, ...]:
    """Look up catalog entries for the given channel keys, preserving order.

    Args:
        keys: Channel keys, e.g. ``["ac", "fan"]``.

    Returns:
        tuple[ChannelSpec, ...]: The matching catalog entries.

    Raises:
        KeyError: If a key is not in :data:`CHANNEL_CATALOG`.
    """
    return tuple(CHANNEL_CATALOG[key] for key in keys)
