"""
Fan-out of device collection changes to registered observers.

Every subscriber owns a bounded queue and a delivery task, so a slow or
failing callback only delays itself: ``publish()`` never blocks and never
raises. Each message is the full current collection (not a diff), so when a
subscriber falls behind, its oldest pending collection is discarded in
favour of the newer one -- the subscriber still receives the latest state.

The hub holds a subscriber's callback only until it unsubscribes.
Unsubscribing is idempotent and safe to call from inside a callback or
while a fan-out is in progress.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from collections.abc import Callable
from typing import Any

from energyhub.src.models import Device

logger = logging.getLogger(__name__)

DeviceCollection = tuple[Device, ...]
Subscriber = Callable[[DeviceCollection], Any]
"""Sync or async callable receiving the full device collection."""

_DEFAULT_QUEUE_SIZE = 16


class _Subscription:
    """Per-subscriber delivery state."""

    __slots__ = ("callback", "queue", "task")

    def __init__(self, callback: Subscriber, queue_size: int) -> None:
        self.callback: Subscriber | None = callback
        self.queue: asyncio.Queue[DeviceCollection] = asyncio.Queue(maxsize=queue_size)
        self.task: asyncio.Task[None] | None = None


class SubscriptionHub:
    """Delivers every published device collection to every live subscriber.

    Must be used from within a running event loop.

    Args:
        queue_size: Pending collections buffered per subscriber before the
            oldest is discarded.

    Usage::

        hub = SubscriptionHub()
        unsubscribe = hub.subscribe(lambda devices: print(len(devices)))
        hub.publish(devices)
        unsubscribe()
    """

    def __init__(self, *, queue_size: int = _DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscriptions: dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._current: DeviceCollection = ()
        self._publish_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def current(self) -> DeviceCollection:
        """The most recently published collection."""
        return self._current

    @property
    def subscriber_count(self) -> int:
        """Number of live subscribers."""
        return len(self._subscriptions)

    @property
    def publish_count(self) -> int:
        """Number of fan-outs performed since creation."""
        return self._publish_count

    def subscribe(self, callback: Subscriber, *, replay: bool = True) -> Callable[[], None]:
        """Register *callback* for every future collection change.

        Args:
            callback: Sync or async callable taking the device collection.
            replay: Deliver the current collection right away.

        Returns:
            Callable[[], None]: Idempotent unsubscribe function.
        """
        sub_id = next(self._ids)
        subscription = _Subscription(callback, self._queue_size)
        subscription.task = asyncio.create_task(
            self._deliver(sub_id, subscription),
            name=f"device-subscriber-{sub_id}",
        )
        self._subscriptions[sub_id] = subscription
        logger.debug("Subscriber %d registered (%d live)", sub_id, len(self._subscriptions))

        if replay:
            self._offer(sub_id, subscription, self._current)

        def unsubscribe() -> None:
            self._remove(sub_id)

        return unsubscribe

    def publish(self, devices: DeviceCollection) -> None:
        """Queue *devices* for every live subscriber without blocking."""
        self._current = devices
        self._publish_count += 1
        for sub_id, subscription in list(self._subscriptions.items()):
            self._offer(sub_id, subscription, devices)

    async def flush(self) -> None:
        """Wait until every subscriber has processed its pending collections."""
        queues = [sub.queue for sub in self._subscriptions.values()]
        await asyncio.gather(*(queue.join() for queue in queues))

    async def close(self) -> None:
        """Unsubscribe everyone and wait for delivery tasks to stop."""
        tasks = [sub.task for sub in self._subscriptions.values() if sub.task is not None]
        for sub_id in list(self._subscriptions):
            self._remove(sub_id)
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _offer(self, sub_id: int, subscription: _Subscription, devices: DeviceCollection) -> None:
        queue = subscription.queue
        if queue.full():
            queue.get_nowait()
            queue.task_done()
            logger.warning("Subscriber %d is falling behind, dropped a stale collection", sub_id)
        queue.put_nowait(devices)

    def _remove(self, sub_id: int) -> None:
        subscription = self._subscriptions.pop(sub_id, None)
        if subscription is None:
            return
        subscription.callback = None
        if subscription.task is not None:
            subscription.task.cancel()
        # Release waiters of flush() for anything still pending.
        while not subscription.queue.empty():
            subscription.queue.get_nowait()
            subscription.queue.task_done()
        logger.debug("Subscriber %d removed (%d live)", sub_id, len(self._subscriptions))

    async def _deliver(self, sub_id: int, subscription: _Subscription) -> None:
        while True:
            devices = await subscription.queue.get()
            try:
                callback = subscription.callback
                if callback is None:
                    return
                result = callback(devices)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Subscriber %d callback failed", sub_id, exc_info=True)
            finally:
                subscription.queue.task_done()
