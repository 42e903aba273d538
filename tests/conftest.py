from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pumpguard._constants import DEFAULT_DEVICE_ID
from pumpguard.config import PumpGuardConfig
from pumpguard.coordinator import MotorCoordinator
from pumpguard.models.motor import MotorState
from pumpguard.sensors import CachedSensorSource, SensorSnapshotSource
from pumpguard.sinks.event_log import InMemoryEventLog
from pumpguard.sinks.notifier import RecordingNotifier
from pumpguard.state.backend import InMemoryKeyedStore
from pumpguard.state.cache import InMemoryExpiringCache


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class Harness:
    coordinator: MotorCoordinator
    clock: FakeClock
    cache: InMemoryExpiringCache
    backend: InMemoryKeyedStore
    events: InMemoryEventLog
    notifier: RecordingNotifier
    sensors: CachedSensorSource

    async def heartbeat(self, device_id: str = DEFAULT_DEVICE_ID, **fields: Any) -> MotorState:
        report: dict[str, Any] = {
            "device_id": device_id,
            "motor_running": False,
            "control_mode": "auto",
            "protection_active": False,
        }
        report.update(fields)
        return await self.coordinator.heartbeat(report)

    async def seed(self, state: MotorState) -> None:
        await self.backend.put(f"motor_state:{state.device_id}", state.to_record())

    async def snapshot(
        self,
        device_id: str = DEFAULT_DEVICE_ID,
        *,
        ground: tuple[bool, bool] = (True, True),
        roof: tuple[bool, bool] = (True, True),
        ground_level: float | None = 40.0,
        roof_level: float | None = 70.0,
    ) -> None:
        """Store a raw device-status snapshot as the ingestion path would."""
        await self.sensors.store(
            device_id,
            {
                "ground_tank": {
                    "connected": ground[0],
                    "sensor_working": ground[1],
                    "level_percent": ground_level,
                    "last_update": self.clock.now.isoformat(),
                },
                "roof_tank": {
                    "connected": roof[0],
                    "sensor_working": roof[1],
                    "level_percent": roof_level,
                    "last_update": self.clock.now.isoformat(),
                },
            },
            ttl=3600,
        )


def make_harness(
    clock: FakeClock | None = None,
    *,
    sensors: SensorSnapshotSource | None = None,
    **config: Any,
) -> Harness:
    clock = clock or FakeClock()
    cache = InMemoryExpiringCache(clock=clock)
    backend = InMemoryKeyedStore()
    events = InMemoryEventLog()
    notifier = RecordingNotifier()
    cached_sensors = CachedSensorSource(cache)
    coordinator = MotorCoordinator(
        PumpGuardConfig(**config),
        backend=backend,
        cache=cache,
        event_log=events,
        notifier=notifier,
        sensors=sensors or cached_sensors,
        clock=clock,
    )
    return Harness(coordinator, clock, cache, backend, events, notifier, cached_sensors)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def harness(clock: FakeClock) -> Harness:
    return make_harness(clock)
