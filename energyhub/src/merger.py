"""
Pure series merger that turns per-channel RawLogs into one EnergyRecord timeline.

Each appliance writes its own RawLog (timestamp-key -> watts) and the logs
are not aligned: a channel may be missing a minute that another channel
has. The merger builds the sorted union of all keys and, for every key,
looks each channel up independently. A channel absent at a key reads as 0,
and so does any value that is not a usable number.

This is a pure function: no side effects, no I/O, no clock. Re-running it on
identical input yields identical output.

CHANGELOG:
- 2026-10-17: Accept numeric strings, clamp negative readings (STORY-008)
- 2026-10-17: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from energyhub.src.channels import ChannelSpec
from energyhub.src.models import EnergyRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def coerce_reading(value: Any) -> float:
    """Interpret a stored reading as watts.

    Numbers and numeric strings are accepted. Booleans, None, NaN,
    infinities, and anything else non-numeric read as 0. Negative readings
    are clamped to 0.

    Args:
        value: The raw value stored under a timestamp-key.

    Returns:
        float: Non-negative watts.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0

    if not math.isfinite(number):
        return 0.0
    if number < 0:
        return 0.0
    return number


def extract_log(raw_state: Mapping[str, Any], channel: ChannelSpec) -> Mapping[str, Any]:
    """Walk the channel's node path and return its RawLog.

    A missing node, or a node that is not a mapping, yields an empty log.
    """
    node: Any = raw_state
    for part in channel.path:
        if not isinstance(node, Mapping):
            node = None
            break
        node = node.get(part)

    if node is None:
        return {}
    if not isinstance(node, Mapping):
        logger.warning(
            "Channel '%s': node /%s is %s, not a log mapping; treating as empty",
            channel.key,
            "/".join(channel.path),
            type(node).__name__,
        )
        return {}
    return node


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def merge_series(
    raw_state: Mapping[str, Any],
    channels: Sequence[ChannelSpec],
) -> list[EnergyRecord]:
    """Merge every channel's RawLog into a sorted, deduplicated timeline.

    Keys are sorted lexicographically, which is chronological for the
    fixed ``YYYY-MM-DD_HH-MM`` format.

    Args:
        raw_state: The raw state tree returned by the fetcher.
        channels: Active channels, in display order.

    Returns:
        list[EnergyRecord]: One record per distinct key. Empty when every
        channel log is empty; the caller applies the fallback.
    """
    logs = {channel.key: extract_log(raw_state, channel) for channel in channels}
    benchmarks = {channel.key: channel.benchmark_w for channel in channels}

    keys: set[str] = set()
    for log in logs.values():
        keys.update(str(key) for key in log)

    records: list[EnergyRecord] = []
    for key in sorted(keys):
        values = {
            channel.key: coerce_reading(logs[channel.key].get(key))
            for channel in channels
        }
        records.append(
            EnergyRecord(
                name=key,
                channels=values,
                total_power=sum(values.values()),
                benchmarks=dict(benchmarks),
            )
        )

    logger.debug(
        "Merged %d channel(s) into %d record(s)", len(channels), len(records)
    )
    return records
