"""
Fire-and-forget activity sink for device lifecycle events.

Writes one entry per event under ``logs/deviceActivity/<ms>-<seq>`` in the
realtime store. Recording never blocks and never raises: each write runs as
a background task and failures are logged only.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from energyhub.src.store import DeviceStore

logger = logging.getLogger(__name__)

ACTIVITY_ROOT = "logs/deviceActivity"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ActivitySink:
    """Background writer of activity entries.

    Args:
        store: Store the entries are written to.
        clock_ms: Epoch-milliseconds clock.
    """

    def __init__(
        self,
        store: DeviceStore,
        *,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._clock_ms = clock_ms
        self._seq = itertools.count()
        self._pending: set[asyncio.Task[None]] = set()

    def record(self, action: str, **details: Any) -> None:
        """Schedule an activity entry write and return immediately."""
        now = self._clock_ms()
        path = f"{ACTIVITY_ROOT}/{now}-{next(self._seq)}"
        entry = {"action": action, "timestamp": now, **details}
        task = asyncio.create_task(self._write(path, entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def close(self) -> None:
        """Wait for pending writes to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _write(self, path: str, entry: dict[str, Any]) -> None:
        try:
            await self._store.put(path, entry)
        except Exception:
            logger.warning("Failed to record activity '%s'", entry.get("action"), exc_info=True)
