"""
Aggregation pipeline: raw state tree -> Snapshot.

Chains the pure steps (merge -> window -> derive) into one Snapshot, and
builds the hardcoded all-zero fallback Snapshot served whenever a pipeline
run fails. Neither function performs I/O; the clock is injected as ``now``.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from energyhub.src.channels import ChannelSpec
from energyhub.src.merger import merge_series
from energyhub.src.models import Snapshot, Stats, StatValue, UsageSlice
from energyhub.src.statistics import SAVINGS_PLACEHOLDER, derive_statistics, format_kw
from energyhub.src.window import apply_window, fallback_record


def build_snapshot(
    raw_state: Mapping[str, Any],
    *,
    channels: Sequence[ChannelSpec],
    window: timedelta,
    now: datetime,
) -> Snapshot:
    """Run merge, window, and derive over one raw state tree.

    Args:
        raw_state: The raw state tree from the fetcher.
        channels: Active channels.
        window: Width of the recent window.
        now: Anchor of the window, also stamped as ``fetched_at``.

    Returns:
        Snapshot: A fresh, non-fallback snapshot.
    """
    merged = merge_series(raw_state, channels)
    windowed = apply_window(merged, now=now, window=window, channels=channels)
    derived = derive_statistics(
        windowed.full,
        windowed.recent,
        raw_state,
        channels,
        now=now,
    )
    return Snapshot(
        stats=derived.stats,
        energy_data=windowed.full,
        recent_energy_data=windowed.recent,
        usage_data=derived.usage,
        alerts=derived.alerts,
        fetched_at=now,
    )


def fallback_snapshot(*, channels: Sequence[ChannelSpec], now: datetime) -> Snapshot:
    """The all-zero snapshot with a single synthetic record."""
    record = fallback_record(now, channels)
    zero = format_kw(0.0)
    return Snapshot(
        stats=Stats(
            energy_usage=StatValue(value=zero),
            savings=StatValue(value=SAVINGS_PLACEHOLDER),
            efficiency=StatValue(value=zero),
            automation_status=StatValue(value="Auto"),
        ),
        energy_data=[record],
        recent_energy_data=[record],
        usage_data=[
            UsageSlice(name=channel.label, value=0.0, color=channel.color)
            for channel in channels
        ],
        alerts=[],
        fetched_at=now,
        is_fallback=True,
    )
