"""
Unit tests for the single-flight AggregateCache.

Tests verify:
- A fresh snapshot is served without touching the fetcher.
- An expired snapshot triggers exactly one refresh.
- Concurrent callers during a miss share one pipeline run.
- A failed or timed-out run returns the fallback snapshot and leaves the
  stored snapshot and its timestamp untouched, so the next call retries.
- The snapshot mirror receives fresh snapshots; its failures are ignored.

CHANGELOG:
- 2026-10-17: Add mirror hook tests (STORY-011)
- 2026-10-17: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
from energyhub.src.cache import AggregateCache
from energyhub.src.errors import TransientFetchError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FakeFetcher:
    """Fetcher double counting calls, optionally gated or failing."""

    def __init__(self, payload: dict[str, Any]) -> None:
        self.payload = payload
        self.error: BaseException | None = None
        self.gate: asyncio.Event | None = None
        self.calls = 0

    async def fetch(self) -> dict[str, Any]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.payload


class _FakeClock:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


def _cache(fetcher, channels, now: datetime, clock: _FakeClock, **kwargs) -> AggregateCache:
    return AggregateCache(
        fetcher,
        channels=channels,
        ttl_s=60,
        window=timedelta(hours=24),
        clock=clock,
        now=lambda: now,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# TTL behaviour
# ---------------------------------------------------------------------------


class TestTtl:
    @pytest.mark.asyncio
    async def test_fresh_snapshot_served_from_cache(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        cache = _cache(fetcher, ac_fan, now, clock)

        first = await cache.get()
        clock.value += 59
        second = await cache.get()

        assert first is second
        assert fetcher.calls == 1
        assert cache.is_fresh() is True

    @pytest.mark.asyncio
    async def test_expired_snapshot_refreshed(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        cache = _cache(fetcher, ac_fan, now, clock)

        await cache.get()
        clock.value += 60
        assert cache.is_fresh() is False
        await cache.get()

        assert fetcher.calls == 2
        assert cache.run_count == 2
        assert cache.stored_at == clock.value

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        cache = _cache(fetcher, ac_fan, now, clock)

        await cache.get()
        cache.invalidate()
        assert cache.snapshot is None
        await cache.get()

        assert fetcher.calls == 2


# ---------------------------------------------------------------------------
# Single-flight
# ---------------------------------------------------------------------------


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_run(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        fetcher.gate = asyncio.Event()
        cache = _cache(fetcher, ac_fan, now, clock)

        waiters = [asyncio.create_task(cache.get()) for _ in range(10)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        fetcher.gate.set()
        results = await asyncio.gather(*waiters)

        assert fetcher.calls == 1
        assert cache.run_count == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_stale_snapshot_not_served_during_refresh(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        cache = _cache(fetcher, ac_fan, now, clock)
        stale = await cache.get()

        clock.value += 120
        fetcher.payload = {"ac_power_logs": {"2026-10-17_11-59": 2000}}
        fetcher.gate = asyncio.Event()
        waiter = asyncio.create_task(cache.get())
        await asyncio.sleep(0)
        assert not waiter.done()

        fetcher.gate.set()
        fresh = await waiter

        assert fresh is not stale
        assert fresh.stats.energy_usage.value == "2.00 kW"

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_run(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        fetcher.gate = asyncio.Event()
        cache = _cache(fetcher, ac_fan, now, clock)

        impatient = asyncio.create_task(cache.get())
        patient = asyncio.create_task(cache.get())
        await asyncio.sleep(0)
        impatient.cancel()
        fetcher.gate.set()

        snapshot = await patient
        assert snapshot.is_fallback is False
        assert impatient.cancelled()
        assert fetcher.calls == 1


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_fetch_error_returns_fallback_without_storing(
        self, raw_state, ac_fan, now
    ) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        cache = _cache(fetcher, ac_fan, now, clock)
        good = await cache.get()
        stored_at = cache.stored_at

        clock.value += 61
        fetcher.error = TransientFetchError("store down")
        result = await cache.get()

        assert result.is_fallback is True
        assert result.stats.energy_usage.value == "0.00 kW"
        assert cache.snapshot is good
        assert cache.stored_at == stored_at

        fetcher.error = None
        retried = await cache.get()
        assert retried.is_fallback is False
        assert fetcher.calls == 3

    @pytest.mark.asyncio
    async def test_failure_without_prior_snapshot(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        fetcher.error = TransientFetchError("store down")
        cache = _cache(fetcher, ac_fan, now, clock)

        first = await cache.get()
        second = await cache.get()

        assert first.is_fallback is True
        assert first == second
        assert cache.snapshot is None
        assert fetcher.calls == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_fallback(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        fetcher.error = RuntimeError("boom")
        cache = _cache(fetcher, ac_fan, now, clock)

        assert (await cache.get()).is_fallback is True

    @pytest.mark.asyncio
    async def test_hung_fetch_times_out_to_fallback(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        fetcher.gate = asyncio.Event()  # never set
        cache = _cache(fetcher, ac_fan, now, clock, fetch_timeout_s=0.05)

        snapshot = await cache.get()

        assert snapshot.is_fallback is True
        assert cache.snapshot is None

    @pytest.mark.asyncio
    async def test_all_waiters_get_the_fallback(self, raw_state, ac_fan, now) -> None:
        fetcher, clock = _FakeFetcher(raw_state), _FakeClock()
        fetcher.gate = asyncio.Event()
        fetcher.error = TransientFetchError("store down")
        cache = _cache(fetcher, ac_fan, now, clock)

        waiters = [asyncio.create_task(cache.get()) for _ in range(5)]
        await asyncio.sleep(0)
        fetcher.gate.set()
        results = await asyncio.gather(*waiters)

        assert fetcher.calls == 1
        assert all(result.is_fallback for result in results)


# ---------------------------------------------------------------------------
# Mirror hook
# ---------------------------------------------------------------------------


class TestMirror:
    @pytest.mark.asyncio
    async def test_fresh_snapshot_mirrored(self, raw_state, ac_fan, now) -> None:
        mirror = AsyncMock()
        cache = _cache(_FakeFetcher(raw_state), ac_fan, now, _FakeClock(), mirror=mirror)

        snapshot = await cache.get()
        await cache.close()

        mirror.assert_awaited_once_with(snapshot)

    @pytest.mark.asyncio
    async def test_fallback_not_mirrored(self, raw_state, ac_fan, now) -> None:
        fetcher = _FakeFetcher(raw_state)
        fetcher.error = TransientFetchError("store down")
        mirror = AsyncMock()
        cache = _cache(fetcher, ac_fan, now, _FakeClock(), mirror=mirror)

        await cache.get()
        await cache.close()

        mirror.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mirror_failure_ignored(self, raw_state, ac_fan, now) -> None:
        mirror = AsyncMock(side_effect=ConnectionError("redis down"))
        cache = _cache(_FakeFetcher(raw_state), ac_fan, now, _FakeClock(), mirror=mirror)

        snapshot = await cache.get()
        await cache.close()

        assert snapshot.is_fallback is False
        assert cache.snapshot is snapshot
