"""
Pydantic models for the dashboard snapshot and the mirrored device registry.

Every model is frozen: a Snapshot or Device handed to a consumer is never
mutated afterwards. New state is published by building a new instance and
swapping the reference.

CHANGELOG:
- 2026-10-17: Add Device and DeviceType (STORY-009)
- 2026-10-17: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

KEY_FORMAT = "%Y-%m-%d_%H-%M"
"""strftime/strptime format of a timestamp-key (one-minute slots)."""


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class EnergyRecord(BaseModel):
    """One merged timeline slot.

    Attributes:
        name: Timestamp-key of the slot (``YYYY-MM-DD_HH-MM``).
        channels: Channel key -> watts, zero-filled for every active channel.
        total_power: Sum of all channel values in watts.
        benchmarks: Channel key -> fixed reference watts.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    channels: dict[str, float]
    total_power: float
    benchmarks: dict[str, float]


class UsageSlice(BaseModel):
    """Accumulated energy of one channel over the full timeline (kWh)."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: float
    color: str


class StatValue(BaseModel):
    """A display-ready dashboard figure."""

    model_config = ConfigDict(frozen=True)

    value: str
    change: float = 0.0


class Stats(BaseModel):
    """Scalar dashboard statistics.

    Attributes:
        energy_usage: Latest total of the recent window, e.g. ``"0.55 kW"``.
        savings: Savings placeholder, always ``"$0"``.
        efficiency: Peak total of the recent window, e.g. ``"2.10 kW"``.
        automation_status: ``"Auto"`` or ``"Manual"``.
    """

    model_config = ConfigDict(frozen=True)

    energy_usage: StatValue
    savings: StatValue
    efficiency: StatValue
    automation_status: StatValue


class AlertType(StrEnum):
    CRITICAL = "Critical"
    WARNING = "Warning"
    INFO = "Info"


class Alert(BaseModel):
    """A rule-triggered alert raised from the latest raw store state."""

    model_config = ConfigDict(frozen=True)

    id: int
    type: AlertType
    system: str
    location: str
    message: str
    timestamp: str
    status: str = "Active"


class Snapshot(BaseModel):
    """The complete cached aggregate served to dashboards.

    Attributes:
        stats: Scalar statistics.
        energy_data: Full merged timeline (used for totals).
        recent_energy_data: Windowed timeline, or the single synthetic zero
            record when the window is empty. Never empty.
        usage_data: Per-channel kWh breakdown over the full timeline.
        alerts: Alerts raised by this pipeline run.
        fetched_at: When the pipeline run that produced this snapshot ran.
        is_fallback: True for the hardcoded all-zero snapshot served on
            pipeline failure.
    """

    model_config = ConfigDict(frozen=True)

    stats: Stats
    energy_data: list[EnergyRecord]
    recent_energy_data: list[EnergyRecord]
    usage_data: list[UsageSlice]
    alerts: list[Alert]
    fetched_at: datetime
    is_fallback: bool = False


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


class DeviceType(StrEnum):
    LIGHT = "light"
    FAN = "fan"
    AC = "ac"
    GEYSER = "geyser"
    REFRIGERATOR = "refrigerator"
    THERMOSTAT = "thermostat"
    ENERGY_METER = "energy-meter"
    SECURITY_CAMERA = "security-camera"
    SMART_PLUG = "smart-plug"
    OTHER = "other"


class DeviceStatus(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"


DEFAULT_ROOM = "Default Room"


class Device(BaseModel):
    """A device as mirrored from the store's ``devices`` node.

    Field names follow Python conventions; the store's camelCase
    ``lastUpdated`` is accepted and emitted through the alias.

    Attributes:
        id: Opaque device identifier (the node key).
        name: Display name.
        type: Device type; unknown store values map to ``other``.
        room: Room label, ``"Default Room"`` for legacy devices without one.
        status: Connectivity status.
        state: Power state (True = on).
        value: Optional set-point (temperature, brightness, speed).
        last_updated: Epoch milliseconds of the last write.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    type: DeviceType = DeviceType.OTHER
    room: str = DEFAULT_ROOM
    status: DeviceStatus = DeviceStatus.ONLINE
    state: bool = False
    value: float | None = None
    last_updated: int = Field(default=0, alias="lastUpdated")
