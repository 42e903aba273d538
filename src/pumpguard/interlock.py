"""Sensor-safety interlock.

Every tick the interlock reads the latest sensor snapshot of each known
device. A running motor whose sensors cannot be trusted is stopped through
the regular command protocol and a pause record is kept in the cache; once
both tanks report healthy again the motor is restarted if it was running
when paused.

Per device::

    override active           -> skip
    no snapshot               -> skip
    unhealthy, running, no record -> stop, store pause record
    healthy, record exists    -> start (if it was running), drop record
    always                    -> status notification
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from pydantic import ValidationError

from pumpguard._constants import (
    RESUME_BASE_MINUTES,
    RESUME_DISCONNECTED_MINUTES,
    RESUME_INVALID_READING_MINUTES,
    RESUME_TIMEOUT_MINUTES,
    SENSOR_PAUSE_KEY,
    key_for,
)
from pumpguard._emit import Emitter
from pumpguard.commands import CommandProtocol
from pumpguard.exceptions import CommandError, StoreError
from pumpguard.models._base import utcnow
from pumpguard.models.command import CommandRequest
from pumpguard.models.event_log import EventSeverity, EventType
from pumpguard.models.motor import CommandSource, MotorAction, MotorState
from pumpguard.models.notifications import (
    AlertType,
    PauseDetails,
    PumpPaused,
    PumpPauseDetails,
    PumpResumed,
    PumpStateBeforePause,
    PumpStatus,
    SensorMonitoringUpdate,
    SensorState,
    Severity,
    SystemAlert,
    SystemDataRefresh,
    TankPauseDetail,
)
from pumpguard.models.sensor import (
    PreviousMotorState,
    SensorFault,
    SensorFaultType,
    SensorPauseRecord,
    SensorSnapshot,
    TankReading,
)
from pumpguard.override import OverrideRegistry
from pumpguard.sensors import SensorSnapshotSource
from pumpguard.state.cache import ExpiringCache
from pumpguard.state.store import MotorStateStore

_logger = logging.getLogger(__name__)

RESUME_REASON = "Sensors recovered - resuming pump operation"

_RESUME_INCREMENTS: dict[SensorFaultType, int] = {
    SensorFaultType.DISCONNECTED: RESUME_DISCONNECTED_MINUTES,
    SensorFaultType.TIMEOUT: RESUME_TIMEOUT_MINUTES,
    SensorFaultType.INVALID_READING: RESUME_INVALID_READING_MINUTES,
}


class InterlockAction(enum.StrEnum):
    """Outcome of one interlock check for a device."""

    OVERRIDDEN = "overridden"
    NO_SNAPSHOT = "no_snapshot"
    PAUSED = "paused"
    RESUMED = "resumed"
    RESUME_DEFERRED = "resume_deferred"
    NONE = "none"


def classify_fault(reading: TankReading) -> SensorFault:
    """Classify why a tank sensor is unhealthy (``none`` when it is healthy)."""
    level = reading.level_percent
    if not reading.connected:
        error_type = SensorFaultType.DISCONNECTED
    elif reading.working:
        error_type = SensorFaultType.NONE
    elif level is None:
        error_type = SensorFaultType.NO_DATA
    elif level < 0 or level > 100:
        error_type = SensorFaultType.INVALID_READING
    else:
        error_type = SensorFaultType.TIMEOUT
    return SensorFault(error_type=error_type, last_reading=level, last_reading_time=reading.observed_at)


def estimate_resume_time(now: datetime, ground: SensorFault, roof: SensorFault) -> datetime:
    minutes = RESUME_BASE_MINUTES
    for fault in (ground, roof):
        minutes += _RESUME_INCREMENTS.get(fault.error_type, 0)
    return now + timedelta(minutes=minutes)


def requires_manual_intervention(ground: SensorFault, roof: SensorFault) -> bool:
    return ground.error_type is SensorFaultType.DISCONNECTED and roof.error_type is SensorFaultType.DISCONNECTED


def _tank_label(reading: TankReading) -> str:
    if not reading.connected:
        return "OFFLINE"
    return "OK" if reading.working else "FAULT"


def pause_reason(snapshot: SensorSnapshot) -> str:
    return f"Sensor offline - Ground: {_tank_label(snapshot.ground)}, Roof: {_tank_label(snapshot.roof)}"


def _tank_summary(reading: TankReading) -> str:
    connected = "connected" if reading.connected else "disconnected"
    working = "working" if reading.working else "not working"
    return f"{connected} ({working})"


def _tank_detail(reading: TankReading, fault: SensorFault) -> TankPauseDetail:
    return TankPauseDetail(
        connected=reading.connected,
        working=reading.working,
        error_type=fault.error_type,
        last_reading=fault.last_reading,
        last_reading_time=fault.last_reading_time,
    )


class SensorInterlock:
    """Stops and resumes motors based on sensor health."""

    def __init__(
        self,
        store: MotorStateStore,
        commands: CommandProtocol,
        overrides: OverrideRegistry,
        sensors: SensorSnapshotSource,
        cache: ExpiringCache,
        emitter: Emitter,
        *,
        pause_ttl: float = 3600.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._commands = commands
        self._overrides = overrides
        self._sensors = sensors
        self._cache = cache
        self._emitter = emitter
        self._pause_ttl = pause_ttl
        self._clock = clock

    async def pause_status(self, device_id: str) -> SensorPauseRecord | None:
        """The live pause record for *device_id*, if the interlock paused it."""
        raw = await self._cache.get(key_for(SENSOR_PAUSE_KEY, device_id))
        if raw is None:
            return None
        try:
            return SensorPauseRecord.model_validate(raw)
        except ValidationError:
            _logger.warning("Ignoring unreadable sensor pause record for %s", device_id, exc_info=True)
            return None

    async def tick(self) -> dict[str, InterlockAction]:
        """Check every device with a sensor snapshot.

        A failure on one device is logged and does not stop the others.
        """
        results: dict[str, InterlockAction] = {}
        for device_id in await self._sensors.device_ids():
            try:
                results[device_id] = await self.check_device(device_id)
            except Exception:
                _logger.exception("Sensor interlock check failed for %s", device_id)
        return results

    async def check_device(self, device_id: str) -> InterlockAction:
        if await self._overrides.is_overridden(device_id):
            _logger.debug("Sensor monitoring overridden for %s, skipping", device_id)
            return InterlockAction.OVERRIDDEN

        snapshot = await self._sensors.latest(device_id)
        if snapshot is None:
            _logger.debug("No sensor status for %s, skipping", device_id)
            return InterlockAction.NO_SNAPSHOT

        state = await self._store.find(device_id)
        running = state is not None and state.motor_running
        pause = await self.pause_status(device_id)

        action = InterlockAction.NONE
        if not snapshot.healthy and running and pause is None:
            assert state is not None  # noqa: S101
            state, pause = await self._pause(state, snapshot)
            action = InterlockAction.PAUSED
        elif snapshot.healthy and pause is not None:
            resumed, state = await self._resume(device_id, snapshot, pause, state)
            if resumed:
                pause = None
                action = InterlockAction.RESUMED
            else:
                action = InterlockAction.RESUME_DEFERRED

        running = state is not None and state.motor_running
        await self._report_status(device_id, snapshot, running, pause is not None)
        return action

    async def _pause(self, state: MotorState, snapshot: SensorSnapshot) -> tuple[MotorState, SensorPauseRecord]:
        device_id = state.device_id
        now = self._clock()
        ground_fault = classify_fault(snapshot.ground)
        roof_fault = classify_fault(snapshot.roof)
        manual = requires_manual_intervention(ground_fault, roof_fault)
        reason = pause_reason(snapshot)
        _logger.warning("Pausing pump on %s: %s", device_id, reason)

        stopped = await self._commands.issue(
            CommandRequest(device_id=device_id, action=MotorAction.STOP, reason=reason, source=CommandSource.AUTO)
        )

        record = SensorPauseRecord(
            paused_at=now,
            reason=reason,
            previous_motor_state=PreviousMotorState.RUNNING,
            estimated_resume_time=estimate_resume_time(now, ground_fault, roof_fault),
            requires_manual_intervention=manual,
            sensor_status=snapshot.health(),
            ground_sensor_error=ground_fault,
            roof_sensor_error=roof_fault,
        )
        key = key_for(SENSOR_PAUSE_KEY, device_id)
        try:
            await self._cache.set(key, record.to_record(), self._pause_ttl)
        except Exception as exc:
            raise StoreError(f"Failed to store sensor pause record for {device_id}: {exc}", key=key) from exc

        severity = Severity.CRITICAL if manual else Severity.HIGH
        outlook = "Manual intervention required" if manual else "Automatic recovery expected"
        details = PauseDetails(
            ground_sensor=_tank_detail(snapshot.ground, ground_fault),
            roof_sensor=_tank_detail(snapshot.roof, roof_fault),
            pump_state_before_pause=PumpStateBeforePause(
                running=state.motor_running,
                mode=state.control_mode,
                target_level=state.current_target_level,
                runtime_minutes=state.runtime_minutes,
            ),
            estimated_resume_time=record.estimated_resume_time,
            requires_manual_intervention=manual,
        )
        await self._emitter.notify(
            PumpPauseDetails(device_id=device_id, pause_details=details, severity=severity),
            SystemAlert(
                device_id=device_id,
                type=AlertType.PUMP_PAUSED,
                severity=severity,
                message=f"Device {device_id}: Roof pump paused due to sensor issues - {outlook}",
            ),
            PumpPaused(device_id=device_id, reason=reason, sensor_status=record.sensor_status),
            SystemAlert(
                device_id=device_id,
                type=AlertType.SENSOR_OFFLINE,
                severity=Severity.HIGH,
                message=f"Device {device_id}: Roof pump paused due to sensor issues",
            ),
        )
        await self._emitter.log(
            device_id,
            EventType.PUMP_PAUSED_SENSOR,
            f"Roof pump paused due to sensor issues - Ground sensor: {ground_fault.error_type.value}, "
            f"Roof sensor: {roof_fault.error_type.value}",
            EventSeverity.CRITICAL if manual else EventSeverity.HIGH,
        )
        return stopped, record

    async def _resume(
        self,
        device_id: str,
        snapshot: SensorSnapshot,
        pause: SensorPauseRecord,
        state: MotorState | None,
    ) -> tuple[bool, MotorState | None]:
        if pause.previous_motor_state is PreviousMotorState.RUNNING:
            try:
                state = await self._commands.issue(
                    CommandRequest(
                        device_id=device_id,
                        action=MotorAction.START,
                        reason=RESUME_REASON,
                        source=CommandSource.AUTO,
                    )
                )
            except CommandError as exc:
                # The pause record stays so the next tick retries.
                _logger.warning("Sensors recovered on %s but resume was rejected: %s", device_id, exc)
                return False, state

        await self._cache.delete(key_for(SENSOR_PAUSE_KEY, device_id))
        _logger.info("Sensors recovered on %s, pause cleared", device_id)

        health = snapshot.health()
        await self._emitter.notify(
            PumpResumed(device_id=device_id, reason="Sensors recovered", sensor_status=health),
            SystemAlert(
                device_id=device_id,
                type=AlertType.SENSOR_RECOVERED,
                severity=Severity.MEDIUM,
                message=f"Device {device_id}: Roof pump resumed after sensor recovery",
            ),
        )
        await self._emitter.log(
            device_id,
            EventType.PUMP_RESUMED_SENSOR,
            f"Roof pump resumed after sensor recovery - Ground sensor: {_tank_summary(snapshot.ground)}, "
            f"Roof sensor: {_tank_summary(snapshot.roof)}",
        )
        return True, state

    async def _report_status(self, device_id: str, snapshot: SensorSnapshot, running: bool, paused: bool) -> None:
        await self._emitter.notify(
            SensorMonitoringUpdate(
                device_id=device_id,
                ground_sensor=SensorState(connected=snapshot.ground.connected, working=snapshot.ground.working),
                roof_sensor=SensorState(connected=snapshot.roof.connected, working=snapshot.roof.working),
                pump_status=PumpStatus(running=running, paused_by_sensor=paused),
            ),
            SystemDataRefresh(device_id=device_id),
        )
        if snapshot.healthy and not paused:
            return

        message = (
            f"Sensor status - Ground: {_tank_summary(snapshot.ground)}, Roof: {_tank_summary(snapshot.roof)}, "
            f"Pump: {'running' if running else 'stopped'}, Paused by sensor: {paused}"
        )
        _logger.warning("%s: %s", device_id, message)
        await self._emitter.log(
            device_id,
            EventType.SENSOR_STATUS,
            message,
            EventSeverity.INFO if snapshot.healthy else EventSeverity.WARNING,
        )
