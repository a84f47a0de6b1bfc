"""
Unit tests for the SubscriptionHub.

Tests verify:
- Every subscriber receives every published collection, in order.
- New subscribers get the current collection replayed.
- A failing or slow subscriber does not affect the others.
- Unsubscribe is idempotent and safe to call from inside a callback.
- A slow subscriber keeps only the newest pending collections.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import asyncio

import pytest
from energyhub.src.hub import DeviceCollection, SubscriptionHub
from energyhub.src.models import Device


def _devices(*names: str) -> DeviceCollection:
    return tuple(Device(id=f"d-{name}", name=name) for name in names)


class TestFanOut:
    @pytest.mark.asyncio
    async def test_all_subscribers_receive_every_publish(self) -> None:
        hub = SubscriptionHub()
        a: list[DeviceCollection] = []
        b: list[DeviceCollection] = []
        hub.subscribe(a.append, replay=False)
        hub.subscribe(b.append, replay=False)

        hub.publish(_devices("lamp"))
        hub.publish(_devices("lamp", "fan"))
        await hub.flush()

        assert a == b == [_devices("lamp"), _devices("lamp", "fan")]
        assert hub.publish_count == 2
        await hub.close()

    @pytest.mark.asyncio
    async def test_replay_on_subscribe(self) -> None:
        hub = SubscriptionHub()
        hub.publish(_devices("lamp"))
        received: list[DeviceCollection] = []

        hub.subscribe(received.append)
        await hub.flush()

        assert received == [_devices("lamp")]
        await hub.close()

    @pytest.mark.asyncio
    async def test_async_callbacks_supported(self) -> None:
        hub = SubscriptionHub()
        received: list[int] = []

        async def callback(devices: DeviceCollection) -> None:
            await asyncio.sleep(0)
            received.append(len(devices))

        hub.subscribe(callback, replay=False)
        hub.publish(_devices("a", "b"))
        await hub.flush()

        assert received == [2]
        await hub.close()


class TestIsolation:
    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self) -> None:
        hub = SubscriptionHub()
        received: list[DeviceCollection] = []

        def broken(devices: DeviceCollection) -> None:
            raise RuntimeError("observer bug")

        hub.subscribe(broken, replay=False)
        hub.subscribe(received.append, replay=False)
        hub.publish(_devices("lamp"))
        hub.publish(_devices("fan"))
        await hub.flush()

        assert received == [_devices("lamp"), _devices("fan")]
        assert hub.subscriber_count == 2
        await hub.close()

    @pytest.mark.asyncio
    async def test_slow_subscriber_does_not_delay_others(self) -> None:
        hub = SubscriptionHub()
        gate = asyncio.Event()
        fast: list[DeviceCollection] = []

        async def slow(devices: DeviceCollection) -> None:
            await gate.wait()

        hub.subscribe(slow, replay=False)
        hub.subscribe(fast.append, replay=False)
        hub.publish(_devices("lamp"))
        for _ in range(3):
            await asyncio.sleep(0)

        assert fast == [_devices("lamp")]
        gate.set()
        await hub.flush()
        await hub.close()

    @pytest.mark.asyncio
    async def test_falling_behind_drops_oldest(self) -> None:
        hub = SubscriptionHub(queue_size=2)
        gate = asyncio.Event()
        received: list[DeviceCollection] = []

        async def slow(devices: DeviceCollection) -> None:
            await gate.wait()
            received.append(devices)

        hub.subscribe(slow, replay=False)
        hub.publish(_devices("1"))
        await asyncio.sleep(0)  # "1" is taken and blocks on the gate
        for name in ("2", "3", "4"):
            hub.publish(_devices(name))
        gate.set()
        await hub.flush()

        assert received == [_devices("1"), _devices("3"), _devices("4")]
        await hub.close()


class TestUnsubscribe:
    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self) -> None:
        hub = SubscriptionHub()
        received: list[DeviceCollection] = []
        unsubscribe = hub.subscribe(received.append, replay=False)

        unsubscribe()
        unsubscribe()
        hub.publish(_devices("lamp"))
        await hub.flush()

        assert received == []
        assert hub.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_during_fan_out(self) -> None:
        hub = SubscriptionHub()
        received: list[DeviceCollection] = []
        others: list[DeviceCollection] = []
        handle: dict = {}

        def once(devices: DeviceCollection) -> None:
            received.append(devices)
            handle["unsubscribe"]()

        handle["unsubscribe"] = hub.subscribe(once, replay=False)
        hub.subscribe(others.append, replay=False)
        hub.publish(_devices("lamp"))
        hub.publish(_devices("fan"))
        await hub.flush()

        assert received == [_devices("lamp")]
        assert others == [_devices("lamp"), _devices("fan")]
        assert hub.subscriber_count == 1
        await hub.close()

    @pytest.mark.asyncio
    async def test_close_removes_everyone(self) -> None:
        hub = SubscriptionHub()
        hub.subscribe(lambda devices: None)
        hub.subscribe(lambda devices: None)

        await hub.close()

        assert hub.subscriber_count == 0
