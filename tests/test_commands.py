from __future__ import annotations

import pytest
from conftest import FakeClock, Harness, make_harness

from pumpguard._constants import DEFAULT_DEVICE_ID
from pumpguard.exceptions import CommandConflictError, CommandValidationError, DeviceUnavailableError, StoreError
from pumpguard.models.command import CommandRequest
from pumpguard.models.event_log import EventType
from pumpguard.models.motor import CommandSource, ControlMode, MotorAction, MotorState

DEVICE = "pump-a"


@pytest.mark.asyncio
async def test_target_command_previews_running_target_mode(harness: Harness) -> None:
    await harness.heartbeat(DEVICE)

    state = await harness.coordinator.issue_command(device_id=DEVICE, action="target", target_level=18)

    assert state.motor_running is True
    assert state.target_mode_active is True
    assert state.current_target_level == 18
    assert state.target_description == 'Target 18"'
    assert state.pending_motor_running is True
    assert state.pending_target_active is True
    assert state.pending_target_level == 18
    assert state.pending_command_id is not None
    assert state.pending_command_timestamp == harness.clock.now
    assert state.last_command_source is CommandSource.API
    assert state.last_command_reason == "API command"

    stored = await harness.coordinator.get_motor_state(DEVICE)
    assert stored == state


@pytest.mark.asyncio
async def test_issued_command_is_queued_for_the_device(harness: Harness) -> None:
    await harness.heartbeat(DEVICE)

    state = await harness.coordinator.issue_command(
        CommandRequest(device_id=DEVICE, action=MotorAction.START, reason="fill roof tank", source=CommandSource.MOBILE)
    )

    command = await harness.coordinator.poll_pending_command(DEVICE)
    assert command is not None
    assert command.command_id == state.pending_command_id
    assert command.action is MotorAction.START
    assert command.reason == "fill roof tank"
    assert command.source is CommandSource.MOBILE
    assert command.target_level is None

    logged = harness.events.of_type(EventType.MOTOR_COMMAND)
    assert [e.message for e in logged] == ["Motor command: start - fill roof tank"]
    assert harness.notifier.of_kind("system_data_refresh")


@pytest.mark.asyncio
async def test_missing_device_id_uses_primary_device(harness: Harness) -> None:
    state = await harness.coordinator.issue_command(action="stop")

    assert state.device_id == DEFAULT_DEVICE_ID
    assert await harness.coordinator.poll_pending_command() is not None


@pytest.mark.asyncio
async def test_protection_is_reported_before_target_and_connectivity(harness: Harness) -> None:
    await harness.seed(MotorState(device_id=DEVICE, protection_active=True, mcu_online=False))

    with pytest.raises(CommandConflictError) as exc_info:
        await harness.coordinator.issue_command(device_id=DEVICE, action="target")

    assert exc_info.value.device_id == DEVICE
    assert exc_info.value.action == "target"


@pytest.mark.asyncio
async def test_missing_target_is_reported_before_connectivity(harness: Harness) -> None:
    await harness.seed(MotorState(device_id=DEVICE, mcu_online=False))

    with pytest.raises(CommandValidationError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="target")
    with pytest.raises(CommandValidationError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="target", target_level=0)
    with pytest.raises(DeviceUnavailableError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="target", target_level=10)


@pytest.mark.asyncio
async def test_malformed_request_is_a_validation_error(harness: Harness) -> None:
    with pytest.raises(CommandValidationError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="fly")
    with pytest.raises(CommandValidationError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="target", target_level=150)

    # Validation errors are also ValueErrors.
    with pytest.raises(ValueError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="target", target_level=-1)


@pytest.mark.asyncio
async def test_rejected_command_leaves_state_and_queue_untouched(harness: Harness) -> None:
    await harness.heartbeat(DEVICE, protection_active=True)
    before = await harness.coordinator.get_motor_state(DEVICE)

    for action in ("start", "target"):
        with pytest.raises(CommandConflictError):
            await harness.coordinator.issue_command(device_id=DEVICE, action=action, target_level=50)

    assert await harness.coordinator.get_motor_state(DEVICE) == before
    assert await harness.coordinator.poll_pending_command(DEVICE) is None
    assert harness.events.of_type(EventType.MOTOR_COMMAND) == []


@pytest.mark.asyncio
async def test_protection_must_be_confirmed_reset_before_start(harness: Harness) -> None:
    await harness.heartbeat(DEVICE, protection_active=True)

    state = await harness.coordinator.issue_command(device_id=DEVICE, action="reset_protection")
    assert state.protection_active is False
    assert state.motor_running is False

    # The device still reports the latched flag: the heartbeat wins.
    await harness.heartbeat(DEVICE, protection_active=True)
    with pytest.raises(CommandConflictError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="start")

    await harness.heartbeat(DEVICE, protection_active=False)
    state = await harness.coordinator.issue_command(device_id=DEVICE, action="start")
    assert state.motor_running is True


@pytest.mark.asyncio
async def test_offline_device_accepts_commands_that_do_not_run_the_motor(harness: Harness) -> None:
    state = await harness.coordinator.issue_command(device_id=DEVICE, action="disable_buzzer")
    assert state.buzzer_muted is True
    assert state.mcu_online is False

    state = await harness.coordinator.issue_command(device_id=DEVICE, action="manual")
    assert state.control_mode is ControlMode.MANUAL
    assert state.pending_control_mode is ControlMode.MANUAL

    state = await harness.coordinator.issue_command(device_id=DEVICE, action="stop")
    assert state.motor_running is False
    assert state.pending_control_mode is None


@pytest.mark.asyncio
async def test_issuing_does_not_mark_device_online_by_default(harness: Harness) -> None:
    state = await harness.coordinator.issue_command(device_id=DEVICE, action="stop")

    assert state.mcu_online is False


@pytest.mark.asyncio
async def test_issuing_marks_device_online_when_configured(clock: FakeClock) -> None:
    harness = make_harness(clock, command_marks_online=True)

    state = await harness.coordinator.issue_command(device_id=DEVICE, action="stop")

    assert state.mcu_online is True
    assert state.last_heartbeat is None


@pytest.mark.asyncio
async def test_newer_command_supersedes_unretrieved_one(harness: Harness) -> None:
    first = await harness.coordinator.issue_command(device_id=DEVICE, action="auto")
    second = await harness.coordinator.issue_command(device_id=DEVICE, action="manual")

    assert first.pending_command_id != second.pending_command_id
    assert second.control_mode is ControlMode.MANUAL

    command = await harness.coordinator.poll_pending_command(DEVICE)
    assert command is not None
    assert command.command_id == second.pending_command_id

    # A late ack for the superseded command must not remove the live one.
    assert first.pending_command_id is not None
    ack = await harness.coordinator.acknowledge_command(DEVICE, first.pending_command_id, True)
    assert ack.matched is False
    assert await harness.coordinator.poll_pending_command(DEVICE) is not None


@pytest.mark.asyncio
async def test_failed_state_write_leaves_no_command_queued(
    harness: Harness, monkeypatch: pytest.MonkeyPatch
) -> None:
    await harness.heartbeat(DEVICE)

    async def broken_put(key: str, value: dict) -> None:
        raise ConnectionError("database unavailable")

    monkeypatch.setattr(harness.backend, "put", broken_put)

    with pytest.raises(StoreError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="start")

    assert await harness.coordinator.poll_pending_command(DEVICE) is None
    assert harness.events.of_type(EventType.MOTOR_COMMAND) == []
    assert (await harness.coordinator.get_motor_state(DEVICE)).pending_command_id is None


@pytest.mark.asyncio
async def test_failed_state_write_restores_superseded_command(
    harness: Harness, monkeypatch: pytest.MonkeyPatch
) -> None:
    await harness.heartbeat(DEVICE)
    queued = await harness.coordinator.issue_command(device_id=DEVICE, action="stop")

    async def broken_put(key: str, value: dict) -> None:
        raise ConnectionError("database unavailable")

    monkeypatch.setattr(harness.backend, "put", broken_put)

    with pytest.raises(StoreError):
        await harness.coordinator.issue_command(device_id=DEVICE, action="start")

    command = await harness.coordinator.poll_pending_command(DEVICE)
    assert command is not None
    assert command.command_id == queued.pending_command_id
    assert command.action is MotorAction.STOP
    assert (await harness.coordinator.get_motor_state(DEVICE)).pending_command_id == queued.pending_command_id


@pytest.mark.asyncio
async def test_poll_stamps_retrieval_and_caps_ttl(harness: Harness) -> None:
    await harness.coordinator.issue_command(device_id=DEVICE, action="stop")

    command = await harness.coordinator.poll_pending_command(DEVICE)
    assert command is not None
    assert command.retrieved_at == harness.clock.now
    assert await harness.cache.ttl(f"motor_command:{DEVICE}") == 60

    first_retrieval = harness.clock.now
    harness.clock.advance(30)
    again = await harness.coordinator.poll_pending_command(DEVICE)
    assert again is not None
    assert again.retrieved_at == first_retrieval
    assert await harness.cache.ttl(f"motor_command:{DEVICE}") == 30

    harness.clock.advance(31)
    assert await harness.coordinator.poll_pending_command(DEVICE) is None


@pytest.mark.asyncio
async def test_poll_never_extends_remaining_lifetime(harness: Harness) -> None:
    await harness.coordinator.issue_command(device_id=DEVICE, action="stop")
    harness.clock.advance(100)

    assert await harness.coordinator.poll_pending_command(DEVICE) is not None
    assert await harness.cache.ttl(f"motor_command:{DEVICE}") == 20


@pytest.mark.asyncio
async def test_poll_without_command_returns_none(harness: Harness) -> None:
    assert await harness.coordinator.poll_pending_command(DEVICE) is None

    await harness.coordinator.issue_command(device_id=DEVICE, action="stop")
    harness.clock.advance(121)
    assert await harness.coordinator.poll_pending_command(DEVICE) is None


@pytest.mark.asyncio
async def test_acknowledge_is_idempotent(harness: Harness) -> None:
    state = await harness.coordinator.issue_command(device_id=DEVICE, action="stop")
    command_id = state.pending_command_id
    assert command_id is not None

    first = await harness.coordinator.acknowledge_command(DEVICE, command_id, True)
    second = await harness.coordinator.acknowledge_command(DEVICE, command_id, True)

    assert first.matched is True
    assert second.matched is False
    assert await harness.coordinator.poll_pending_command(DEVICE) is None
    assert len(harness.events.of_type(EventType.MOTOR_COMMAND_ACK)) == 1

    # Acknowledgement alone leaves the pending marker for reconciliation.
    assert (await harness.coordinator.get_motor_state(DEVICE)).pending_command_id == command_id


@pytest.mark.asyncio
async def test_failed_acknowledgement_is_logged_as_warning(harness: Harness) -> None:
    state = await harness.coordinator.issue_command(device_id=DEVICE, action="stop")
    assert state.pending_command_id is not None

    ack = await harness.coordinator.acknowledge_command(
        DEVICE, state.pending_command_id, False, error_message="relay stuck"
    )

    assert ack.success is False
    assert ack.error_message == "relay stuck"
    (entry,) = harness.events.of_type(EventType.MOTOR_COMMAND_ACK)
    assert entry.severity == "warning"
    assert entry.message == f"Command {state.pending_command_id} failed: relay stuck"


@pytest.mark.asyncio
async def test_acknowledge_with_blank_command_id_is_rejected(harness: Harness) -> None:
    with pytest.raises(CommandValidationError):
        await harness.coordinator.acknowledge_command(DEVICE, "  ", True)


@pytest.mark.asyncio
async def test_clear_pending_states_keeps_preview(harness: Harness) -> None:
    await harness.heartbeat(DEVICE)
    await harness.coordinator.issue_command(device_id=DEVICE, action="start")

    state = await harness.coordinator.clear_pending_states(DEVICE)

    assert state.has_pending is False
    assert state.pending_motor_running is None
    assert state.motor_running is True
    assert len(harness.events.of_type(EventType.PENDING_CLEARED)) == 1

    # Nothing left to clear: no further audit entry.
    await harness.coordinator.clear_pending_states(DEVICE)
    assert len(harness.events.of_type(EventType.PENDING_CLEARED)) == 1
