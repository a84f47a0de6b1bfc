"""
Recent-window filter over the merged EnergyRecord timeline.

Derives the "recent" view (by default the trailing 24 hours) that charts and
instantaneous statistics use, while the full timeline is kept alongside for
totals. Each timestamp-key is parsed into a calendar instant in the
timezone of ``now``; a key that fails to parse drops only its own record.

When the window is empty the recent view becomes a single synthetic zero
record stamped with the current minute, so downstream consumers never see
an empty sequence.

CHANGELOG:
- 2026-10-17: Compare window bounds in UTC across DST changes (STORY-022)
- 2026-10-17: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo

from energyhub.src.channels import ChannelSpec
from energyhub.src.errors import MalformedDataError
from energyhub.src.models import KEY_FORMAT, EnergyRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowResult:
    """Full and recent views of one merged timeline.

    Attributes:
        full: The unfiltered merged timeline (may be empty).
        recent: Records inside the window, or the fallback record. Never
            empty.
        used_fallback: True when ``recent`` is the synthetic record.
    """

    full: list[EnergyRecord]
    recent: list[EnergyRecord]
    used_fallback: bool


def parse_timestamp_key(key: str, tz: tzinfo | None = None) -> datetime:
    """Parse a ``YYYY-MM-DD_HH-MM`` key into a datetime.

    Args:
        key: The timestamp-key.
        tz: Timezone the key was written in. None yields a naive datetime.

    Returns:
        datetime: The slot's start instant.

    Raises:
        MalformedDataError: If the key does not match the format.
    """
    try:
        parsed = datetime.strptime(key, KEY_FORMAT)
    except (TypeError, ValueError) as exc:
        raise MalformedDataError(f"Unparseable timestamp-key '{key}'") from exc
    return parsed.replace(tzinfo=tz)


def filter_window(
    records: Sequence[EnergyRecord],
    *,
    now: datetime,
    window: timedelta,
) -> list[EnergyRecord]:
    """Keep records whose instant lies in ``[now - window, now]``.

    Keys are interpreted in ``now``'s timezone. Bounds are compared in UTC,
    so the window spans the same elapsed time across DST transitions.
    Unparseable keys are logged and their records dropped; nothing is
    substituted for them.
    """
    end = now.astimezone(UTC) if now.tzinfo is not None else now
    start = end - window
    kept: list[EnergyRecord] = []
    for record in records:
        try:
            instant = parse_timestamp_key(record.name, now.tzinfo)
        except MalformedDataError:
            logger.warning("Dropping record with unparseable key '%s'", record.name)
            continue
        if instant.tzinfo is not None:
            instant = instant.astimezone(UTC)
        if start <= instant <= end:
            kept.append(record)
    return kept


def fallback_record(now: datetime, channels: Sequence[ChannelSpec]) -> EnergyRecord:
    """Build the synthetic all-zero record stamped with the current minute."""
    return EnergyRecord(
        name=now.strftime(KEY_FORMAT),
        channels={channel.key: 0.0 for channel in channels},
        total_power=0.0,
        benchmarks={channel.key: 0.0 for channel in channels},
    )


def apply_window(
    records: Sequence[EnergyRecord],
    *,
    now: datetime,
    window: timedelta,
    channels: Sequence[ChannelSpec],
) -> WindowResult:
    """Filter *records* to the window, substituting the fallback when empty."""
    recent = filter_window(records, now=now, window=window)
    if recent:
        return WindowResult(full=list(records), recent=recent, used_fallback=False)

    logger.info(
        "No records in the last %s (of %d total); using fallback record",
        window,
        len(records),
    )
    return WindowResult(
        full=list(records),
        recent=[fallback_record(now, channels)],
        used_fallback=True,
    )
