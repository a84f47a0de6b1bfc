"""
Time-to-live cache in front of the aggregation pipeline, with single-flight refresh.

``get()`` serves the stored Snapshot while it is younger than the TTL and
otherwise runs the pipeline (fetch -> merge -> window -> derive) once.
Callers that arrive while a refresh is in flight await that same run and
receive its result; no stale snapshot is served during a refresh, and no
two pipeline runs ever execute concurrently on one cache instance.

A failed run (fetch error, timeout, malformed payload, or any unexpected
exception) returns the all-zero fallback Snapshot to every waiter of that
run and leaves the stored Snapshot and its timestamp untouched, so the
next call retries the fetch instead of caching the failure.

CHANGELOG:
- 2026-10-17: Add best-effort snapshot mirror hook (STORY-011)
- 2026-10-17: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, timedelta, tzinfo
from typing import TYPE_CHECKING

from energyhub.src.errors import EnergyHubError
from energyhub.src.pipeline import build_snapshot, fallback_snapshot

if TYPE_CHECKING:
    from energyhub.src.channels import ChannelSpec
    from energyhub.src.fetcher import RawSeriesFetcher
    from energyhub.src.models import Snapshot

logger = logging.getLogger(__name__)

SnapshotMirror = Callable[["Snapshot"], Awaitable[None]]


class AggregateCache:
    """Single-flight TTL cache owning the current dashboard Snapshot.

    Args:
        fetcher: Source of the raw state tree (anything with an async
            ``fetch()`` returning a dict).
        channels: Active telemetry channels.
        ttl_s: Snapshot lifetime in seconds.
        window: Width of the recent window.
        fetch_timeout_s: Upper bound for one fetch; exceeding it counts as
            a fetch failure.
        tz: Timezone in which timestamp-keys are written.
        clock: Monotonic clock used for TTL checks.
        now: Wall clock used to anchor the window.
        mirror: Optional coroutine function called with every fresh
            snapshot. Its failures are logged and ignored.

    Usage::

        cache = AggregateCache(fetcher, channels=channels, ttl_s=60,
                               window=timedelta(hours=24))
        snapshot = await cache.get()
    """

    def __init__(
        self,
        fetcher: RawSeriesFetcher,
        *,
        channels: Sequence[ChannelSpec],
        ttl_s: float,
        window: timedelta,
        fetch_timeout_s: float = 10.0,
        tz: tzinfo = UTC,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
        mirror: SnapshotMirror | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._channels = tuple(channels)
        self._ttl_s = ttl_s
        self._window = window
        self._fetch_timeout_s = fetch_timeout_s
        self._tz = tz
        self._clock = clock
        self._now = now or (lambda: datetime.now(tz=self._tz))
        self._mirror = mirror

        self._snapshot: Snapshot | None = None
        self._stored_at: float | None = None
        self._inflight: asyncio.Task[Snapshot] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._run_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> Snapshot | None:
        """The stored snapshot, fresh or expired, or None."""
        return self._snapshot

    @property
    def stored_at(self) -> float | None:
        """Monotonic time at which the stored snapshot was computed."""
        return self._stored_at

    @property
    def run_count(self) -> int:
        """Number of pipeline runs started by this cache."""
        return self._run_count

    def is_fresh(self) -> bool:
        """True when a stored snapshot exists and is younger than the TTL."""
        if self._snapshot is None or self._stored_at is None:
            return False
        return self._clock() - self._stored_at < self._ttl_s

    async def get(self) -> Snapshot:
        """Return the current snapshot, refreshing it if expired.

        Never raises for pipeline failures: a failed refresh yields the
        fallback snapshot.

        Returns:
            Snapshot: The cached, freshly computed, or fallback snapshot.
        """
        if self.is_fresh():
            return self._snapshot  # type: ignore[return-value]

        if self._inflight is None:
            task = asyncio.create_task(self._refresh())
            task.add_done_callback(self._clear_inflight)
            self._inflight = task
        else:
            logger.debug("Refresh already in flight, waiting for its result")

        # Shield so a cancelled waiter does not cancel the shared run.
        return await asyncio.shield(self._inflight)

    def invalidate(self) -> None:
        """Drop the stored snapshot so the next ``get()`` refreshes."""
        self._snapshot = None
        self._stored_at = None
        logger.info("Dashboard snapshot invalidated")

    async def close(self) -> None:
        """Wait for background mirror writes and any in-flight refresh."""
        pending = [*self._background]
        if self._inflight is not None:
            pending.append(self._inflight)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _clear_inflight(self, task: asyncio.Task[Snapshot]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh(self) -> Snapshot:
        """Run the pipeline once; store on success, fall back on failure."""
        self._run_count += 1
        now = self._now()
        try:
            raw = await asyncio.wait_for(
                self._fetcher.fetch(),
                timeout=self._fetch_timeout_s,
            )
            snapshot = build_snapshot(
                raw,
                channels=self._channels,
                window=self._window,
                now=now,
            )
        except TimeoutError:
            logger.warning(
                "Telemetry fetch exceeded %.1fs, serving fallback snapshot",
                self._fetch_timeout_s,
            )
            return fallback_snapshot(channels=self._channels, now=now)
        except EnergyHubError as exc:
            logger.warning("Pipeline run failed (%s), serving fallback snapshot", exc)
            return fallback_snapshot(channels=self._channels, now=now)
        except Exception:
            logger.error("Unexpected pipeline error, serving fallback snapshot", exc_info=True)
            return fallback_snapshot(channels=self._channels, now=now)

        self._snapshot = snapshot
        self._stored_at = self._clock()
        logger.info(
            "Dashboard snapshot refreshed: %d record(s), %d recent, %d alert(s)",
            len(snapshot.energy_data),
            len(snapshot.recent_energy_data),
            len(snapshot.alerts),
        )
        self._schedule_mirror(snapshot)
        return snapshot

    def _schedule_mirror(self, snapshot: Snapshot) -> None:
        if self._mirror is None:
            return
        task = asyncio.create_task(self._run_mirror(snapshot))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_mirror(self, snapshot: Snapshot) -> None:
        try:
            await self._mirror(snapshot)  # type: ignore[misc]
        except Exception:
            logger.warning("Snapshot mirror failed", exc_info=True)
