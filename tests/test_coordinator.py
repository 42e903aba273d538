from __future__ import annotations

import logging

import pytest
from conftest import FakeClock, Harness, make_harness

from pumpguard.coordinator import MotorCoordinator
from pumpguard.exceptions import CommandValidationError
from pumpguard.sinks.event_log import InMemoryEventLog
from pumpguard.sinks.notifier import RecordingNotifier


@pytest.mark.asyncio
async def test_system_health_counts_devices(harness: Harness) -> None:
    await harness.heartbeat("pump-a", motor_running=True)
    await harness.heartbeat("pump-b", protection_active=True)
    await harness.coordinator.get_motor_state("pump-c")

    health = await harness.coordinator.get_system_health()

    assert health.total_devices == 3
    assert health.online_devices == 2
    assert health.offline_devices == 1
    assert health.running_motors == 1
    assert health.protected_motors == 1
    assert health.system_healthy is False


@pytest.mark.asyncio
async def test_log_system_status(harness: Harness, caplog: pytest.LogCaptureFixture) -> None:
    await harness.heartbeat("pump-a", motor_running=True)

    with caplog.at_level(logging.INFO, logger="pumpguard.coordinator"):
        await harness.coordinator.log_system_status()

    assert "[MOTOR SYSTEM] Devices: 1, Online: 1, Running: 1, Protected: 0" in caplog.text


@pytest.mark.asyncio
async def test_default_device_used_when_omitted(clock: FakeClock) -> None:
    harness = make_harness(clock, default_device_id="pump-roof")

    state = await harness.coordinator.get_motor_state()

    assert state.device_id == "pump-roof"
    assert [s.device_id for s in await harness.coordinator.get_all_motor_states()] == ["pump-roof"]


@pytest.mark.asyncio
async def test_blank_ack_id_rejected(harness: Harness) -> None:
    with pytest.raises(CommandValidationError):
        await harness.coordinator.acknowledge_command("pump-a", "", True)


@pytest.mark.asyncio
async def test_sensor_status_reflects_override(harness: Harness) -> None:
    status = await harness.coordinator.get_sensor_status("pump-a")
    assert status.monitoring_active is True
    assert status.is_overridden is False
    assert status.pause_status is None

    await harness.coordinator.set_override("pump-a", True, "Calibrating")
    status = await harness.coordinator.get_sensor_status("pump-a")

    assert status.monitoring_active is False
    assert status.is_overridden is True


@pytest.mark.asyncio
async def test_context_manager_starts_and_stops_tasks(clock: FakeClock) -> None:
    coordinator = MotorCoordinator(event_log=InMemoryEventLog(), notifier=RecordingNotifier(), clock=clock)

    async with coordinator as running:
        assert running is coordinator
        assert [t.name for t in coordinator.tasks] == [
            "liveness",
            "reconciliation",
            "sensor-interlock",
            "status-log",
        ]
        assert all(t.is_running for t in coordinator.tasks)

    assert not any(t.is_running for t in coordinator.tasks)
