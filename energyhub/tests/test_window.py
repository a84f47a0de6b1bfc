"""
Unit tests for the recent-window filter.

Tests verify:
- Records inside [now - window, now] are kept, boundaries inclusive.
- Unparseable keys drop only their own record.
- An empty window yields exactly one synthetic zero record stamped now.
- The full sequence is returned unchanged alongside the window.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-007)

TODO:
- None
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from energyhub.src.errors import MalformedDataError
from energyhub.src.models import EnergyRecord
from energyhub.src.window import apply_window, filter_window, parse_timestamp_key

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(name: str, watts: float = 100.0) -> EnergyRecord:
    return EnergyRecord(
        name=name,
        channels={"ac": watts},
        total_power=watts,
        benchmarks={"ac": 2500.0},
    )


class TestParseTimestampKey:
    def test_parses_key(self) -> None:
        assert parse_timestamp_key("2026-10-17_09-05", UTC) == datetime(
            2026, 10, 17, 9, 5, tzinfo=UTC
        )

    @pytest.mark.parametrize("key", ["2026-10-17 09:05", "garbage", "2026-13-01_00-00", ""])
    def test_bad_key_raises(self, key: str) -> None:
        with pytest.raises(MalformedDataError):
            parse_timestamp_key(key)


class TestFilterWindow:
    def test_keeps_only_records_in_window(self, now: datetime) -> None:
        records = [
            _record("2026-10-16_11-59"),  # just outside
            _record("2026-10-16_12-00"),  # lower bound
            _record("2026-10-17_11-30"),
            _record("2026-10-17_12-00"),  # upper bound
            _record("2026-10-17_12-01"),  # future
        ]

        kept = filter_window(records, now=now, window=timedelta(hours=24))

        assert [r.name for r in kept] == [
            "2026-10-16_12-00",
            "2026-10-17_11-30",
            "2026-10-17_12-00",
        ]

    def test_bad_key_dropped_without_substitute(self, now: datetime) -> None:
        records = [_record("not-a-key"), _record("2026-10-17_11-00")]

        kept = filter_window(records, now=now, window=timedelta(hours=24))

        assert [r.name for r in kept] == ["2026-10-17_11-00"]

    def test_keys_read_in_now_timezone(self) -> None:
        brussels = ZoneInfo("Europe/Brussels")
        now = datetime(2026, 10, 17, 14, 0, tzinfo=brussels)
        # 13-30 local is inside a one-hour window; it would not be if the
        # key were read as UTC (15-30 local).
        kept = filter_window([_record("2026-10-17_13-30")], now=now, window=timedelta(hours=1))

        assert len(kept) == 1

    def test_window_spans_elapsed_time_across_dst_change(self) -> None:
        brussels = ZoneInfo("Europe/Brussels")
        # Clocks go back at 03:00 on 2026-10-25, so 24 elapsed hours before
        # noon CET reach back to 13:00 CEST the previous day.
        now = datetime(2026, 10, 25, 12, 0, tzinfo=brussels)
        records = [
            _record("2026-10-24_12-30"),  # 24.5h before now
            _record("2026-10-24_13-00"),  # lower bound
            _record("2026-10-25_02-30"),
        ]

        kept = filter_window(records, now=now, window=timedelta(hours=24))

        assert [r.name for r in kept] == ["2026-10-24_13-00", "2026-10-25_02-30"]


class TestApplyWindow:
    def test_empty_window_uses_fallback(self, now: datetime, ac_fan) -> None:
        old = [_record("2026-01-01_00-00")]

        result = apply_window(old, now=now, window=timedelta(hours=24), channels=ac_fan)

        assert result.used_fallback is True
        assert result.full == old
        (fallback,) = result.recent
        assert fallback.name == "2026-10-17_12-00"
        assert fallback.channels == {"ac": 0.0, "fan": 0.0}
        assert fallback.total_power == 0.0

    def test_empty_input_uses_fallback(self, now: datetime, ac_fan) -> None:
        result = apply_window([], now=now, window=timedelta(hours=24), channels=ac_fan)

        assert result.full == []
        assert len(result.recent) == 1

    def test_non_empty_window(self, now: datetime, ac_fan) -> None:
        records = [_record("2026-01-01_00-00"), _record("2026-10-17_11-00")]

        result = apply_window(records, now=now, window=timedelta(hours=24), channels=ac_fan)

        assert result.used_fallback is False
        assert [r.name for r in result.recent] == ["2026-10-17_11-00"]
        assert len(result.full) == 2
