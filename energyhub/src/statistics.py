"""
Dashboard statistics derived from the merged timelines.

A pure function of (full timeline, recent timeline, raw state):

- Current usage: total of the last recent record, in kW.
- Peak ("efficiency"): highest recent total, in kW.
- Usage breakdown: each channel's sum over the FULL timeline converted from
  one-minute watt samples to kWh (divide by 60 and by 1000).
- Automation status: ``manual_fan_control`` true -> Manual, else Auto.
- Alerts: a fixed rule set evaluated against the raw state.

Accumulation uses full precision; rounding happens only when values are
formatted for display.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from energyhub.src.channels import ChannelSpec
from energyhub.src.models import (
    Alert,
    AlertType,
    EnergyRecord,
    Stats,
    StatValue,
    UsageSlice,
)

SAMPLES_PER_HOUR = 60
"""Minute-resolution logs: 60 watt samples make one watt-hour."""

WATTS_PER_KW = 1000

USAGE_DECIMALS = 3

SAVINGS_PLACEHOLDER = "$0"


# ---------------------------------------------------------------------------
# Alert rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AlertRule:
    """Raise an alert when a raw state flag equals a trigger value.

    Attributes:
        id: Stable alert id.
        key: Top-level raw state key inspected.
        trigger: Value of the key that raises the alert. The type must
            match too, so an absent key or ``0`` never matches ``False``.
        type: Alert severity.
        system: System label shown with the alert.
        message: Alert message.
    """

    id: int
    key: str
    trigger: Any
    type: AlertType
    system: str
    message: str

    def evaluate(self, raw_state: Mapping[str, Any], timestamp: str) -> Alert | None:
        value = raw_state.get(self.key)
        if type(value) is not type(self.trigger) or value != self.trigger:
            return None
        return Alert(
            id=self.id,
            type=self.type,
            system=self.system,
            location="Unknown",
            message=self.message,
            timestamp=timestamp,
        )


ALERT_RULES: tuple[AlertRule, ...] = (
    AlertRule(
        id=1,
        key="fan_state",
        trigger=False,
        type=AlertType.WARNING,
        system="Ventilation",
        message="Fan is off",
    ),
    AlertRule(
        id=2,
        key="motion_detected",
        trigger=False,
        type=AlertType.INFO,
        system="Lighting",
        message="No motion detected",
    ),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DerivedStatistics:
    """Outputs of :func:`derive_statistics`."""

    stats: Stats
    usage: list[UsageSlice]
    alerts: list[Alert]


def format_kw(watts: float) -> str:
    """Format watts as a two-decimal kW display string."""
    return f"{watts / WATTS_PER_KW:.2f} kW"


def current_usage_w(recent: Sequence[EnergyRecord]) -> float:
    """Total power of the last recent record, 0 when there is none."""
    if not recent:
        return 0.0
    return recent[-1].total_power


def peak_usage_w(recent: Sequence[EnergyRecord]) -> float:
    """Highest total power across the recent records, 0 when there is none."""
    return max((record.total_power for record in recent), default=0.0)


def usage_breakdown(
    full: Sequence[EnergyRecord],
    channels: Sequence[ChannelSpec],
) -> list[UsageSlice]:
    """Per-channel kWh over the full timeline."""
    usage: list[UsageSlice] = []
    for channel in channels:
        watt_minutes = math.fsum(record.channels.get(channel.key, 0.0) for record in full)
        kwh = watt_minutes / SAMPLES_PER_HOUR / WATTS_PER_KW
        usage.append(
            UsageSlice(
                name=channel.label,
                value=round(kwh, USAGE_DECIMALS),
                color=channel.color,
            )
        )
    return usage


def automation_status(raw_state: Mapping[str, Any]) -> str:
    """``Manual`` when the manual override flag is exactly true, else ``Auto``."""
    return "Manual" if raw_state.get("manual_fan_control") is True else "Auto"


def evaluate_alerts(raw_state: Mapping[str, Any], *, now: datetime) -> list[Alert]:
    """Evaluate every alert rule once against the raw state."""
    timestamp = now.isoformat()
    alerts = []
    for rule in ALERT_RULES:
        alert = rule.evaluate(raw_state, timestamp)
        if alert is not None:
            alerts.append(alert)
    return alerts


def derive_statistics(
    full: Sequence[EnergyRecord],
    recent: Sequence[EnergyRecord],
    raw_state: Mapping[str, Any],
    channels: Sequence[ChannelSpec],
    *,
    now: datetime,
) -> DerivedStatistics:
    """Compute stats, usage breakdown, and alerts for one pipeline run.

    Args:
        full: The unfiltered merged timeline.
        recent: The windowed timeline (fallback already applied).
        raw_state: The raw state tree, for flags and alert rules.
        channels: Active channels, in display order.
        now: Pipeline run time, stamped on alerts.

    Returns:
        DerivedStatistics: Stats, usage breakdown, and alerts.
    """
    stats = Stats(
        energy_usage=StatValue(value=format_kw(current_usage_w(recent))),
        savings=StatValue(value=SAVINGS_PLACEHOLDER),
        efficiency=StatValue(value=format_kw(peak_usage_w(recent))),
        automation_status=StatValue(value=automation_status(raw_state)),
    )
    return DerivedStatistics(
        stats=stats,
        usage=usage_breakdown(full, channels),
        alerts=evaluate_alerts(raw_state, now=now),
    )
