from __future__ import annotations

import pytest
from conftest import FakeClock

from pumpguard.state.cache import InMemoryExpiringCache


@pytest.mark.asyncio
async def test_entries_expire_after_ttl(clock: FakeClock) -> None:
    cache = InMemoryExpiringCache(clock=clock)
    await cache.set("motor_command:a", {"action": "stop"}, 10)

    clock.advance(9)
    assert await cache.get("motor_command:a") == {"action": "stop"}
    assert await cache.ttl("motor_command:a") == 1

    clock.advance(1)
    assert await cache.get("motor_command:a") is None
    assert await cache.ttl("motor_command:a") is None
    assert await cache.delete("motor_command:a") is False


@pytest.mark.asyncio
async def test_values_are_copied(clock: FakeClock) -> None:
    cache = InMemoryExpiringCache(clock=clock)
    value = {"nested": {"level": 1}}
    await cache.set("k", value, 10)

    value["nested"]["level"] = 2
    fetched = await cache.get("k")
    assert fetched == {"nested": {"level": 1}}

    assert fetched is not None
    fetched["nested"]["level"] = 3
    assert await cache.get("k") == {"nested": {"level": 1}}


@pytest.mark.asyncio
async def test_keys_filters_by_prefix_and_liveness(clock: FakeClock) -> None:
    cache = InMemoryExpiringCache(clock=clock)
    await cache.set("sensor:b:status", {}, 100)
    await cache.set("sensor:a:status", {}, 5)
    await cache.set("sensor_pause:a", {}, 100)

    assert await cache.keys("sensor:") == ["sensor:a:status", "sensor:b:status"]

    clock.advance(5)
    assert await cache.keys("sensor:") == ["sensor:b:status"]
    assert len(await cache.keys()) == 2


@pytest.mark.asyncio
async def test_set_replaces_value_and_ttl(clock: FakeClock) -> None:
    cache = InMemoryExpiringCache(clock=clock)
    await cache.set("k", {"v": 1}, 100)
    await cache.set("k", {"v": 2}, 5)

    assert await cache.get("k") == {"v": 2}
    assert await cache.ttl("k") == 5
    assert await cache.delete("k") is True


@pytest.mark.asyncio
async def test_non_positive_ttl_rejected(clock: FakeClock) -> None:
    cache = InMemoryExpiringCache(clock=clock)

    with pytest.raises(ValueError):
        await cache.set("k", {}, 0)
