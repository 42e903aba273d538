"""High-level coordinator tying the command protocol, sweeps, and interlock together."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import aiohttp
from pydantic import ValidationError

from pumpguard._emit import Emitter
from pumpguard.commands import CommandProtocol
from pumpguard.config import PumpGuardConfig
from pumpguard.exceptions import CommandValidationError
from pumpguard.interlock import InterlockAction, SensorInterlock
from pumpguard.models._base import utcnow
from pumpguard.models.command import AckRequest, CommandAck, CommandRequest, OutboundCommand
from pumpguard.models.event_log import EventType
from pumpguard.models.motor import HeartbeatReport, MotorState, SystemHealth
from pumpguard.models.sensor import OverrideRecord, SensorMonitoringStatus, SensorPauseRecord
from pumpguard.override import OverrideRegistry
from pumpguard.scheduler import PeriodicTask
from pumpguard.sensors import CachedSensorSource, SensorSnapshotSource
from pumpguard.sinks.event_log import EventLogSink, HttpEventLogSink, LoggingEventLog
from pumpguard.sinks.mqtt import MqttNotifier
from pumpguard.sinks.notifier import LoggingNotifier, Notifier
from pumpguard.state.backend import InMemoryKeyedStore, KeyedStore
from pumpguard.state.cache import ExpiringCache, InMemoryExpiringCache
from pumpguard.state.store import MotorStateStore
from pumpguard.sweeps import LivenessSweep, PendingReconciliationSweep

_logger = logging.getLogger(__name__)


class MotorCoordinator:
    """Motor command and sensor-safety coordinator.

    Usage::

        async with MotorCoordinator(PumpGuardConfig.from_env()) as coordinator:
            await coordinator.issue_command(action="start")

    Every operation also works without entering the context manager; the
    context manager only starts the periodic tasks and the production
    sinks configured by ``event_log_url`` and ``mqtt_host``.
    """

    def __init__(
        self,
        config: PumpGuardConfig | None = None,
        *,
        backend: KeyedStore | None = None,
        cache: ExpiringCache | None = None,
        event_log: EventLogSink | None = None,
        notifier: Notifier | None = None,
        sensors: SensorSnapshotSource | None = None,
        http_session: aiohttp.ClientSession | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or PumpGuardConfig()
        self._clock = clock
        self._cache = cache or InMemoryExpiringCache(clock=clock)
        self._store = MotorStateStore(
            backend or InMemoryKeyedStore(),
            self._cache,
            cache_ttl=self._config.motor_state_cache_ttl,
            clock=clock,
        )
        self._external_event_log = event_log is not None
        self._external_notifier = notifier is not None
        self._external_session = http_session is not None
        self._http_session = http_session
        self._mqtt: MqttNotifier | None = None
        self._emitter = Emitter(event_log or LoggingEventLog(), notifier or LoggingNotifier())

        self._commands = CommandProtocol(self._store, self._cache, self._emitter, self._config, clock=clock)
        self._overrides = OverrideRegistry(self._cache, self._emitter, ttl=self._config.override_ttl, clock=clock)
        self._interlock = SensorInterlock(
            self._store,
            self._commands,
            self._overrides,
            sensors or CachedSensorSource(self._cache),
            self._cache,
            self._emitter,
            pause_ttl=self._config.sensor_pause_ttl,
            clock=clock,
        )
        self._liveness = LivenessSweep(self._store, self._emitter, self._config, clock=clock)
        self._reconciliation = PendingReconciliationSweep(
            self._store, self._commands, self._emitter, self._config, clock=clock
        )
        self._tasks = [
            PeriodicTask("liveness", self._config.liveness_interval, self._liveness.run),
            PeriodicTask("reconciliation", self._config.reconciliation_interval, self._reconciliation.run),
            PeriodicTask("sensor-interlock", self._config.interlock_interval, self._interlock.tick),
            PeriodicTask("status-log", self._config.status_log_interval, self.log_system_status),
        ]

    @property
    def config(self) -> PumpGuardConfig:
        return self._config

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> MotorCoordinator:
        self._start_sinks()
        for task in self._tasks:
            task.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for task in self._tasks:
            await task.stop()
        if self._mqtt is not None:
            self._mqtt.stop()
            self._mqtt = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _start_sinks(self) -> None:
        config = self._config
        if config.event_log_url and not self._external_event_log:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._emitter.event_log = HttpEventLogSink(config.event_log_url, self._http_session)
            _logger.info("Audit events go to %s", config.event_log_url)

        if config.mqtt_host and not self._external_notifier:
            notifier = MqttNotifier(
                host=config.mqtt_host,
                port=config.mqtt_port,
                topic_prefix=config.mqtt_topic_prefix,
                keepalive=config.mqtt_keepalive,
            )
            # Best effort; notifications fall back to logging.
            try:
                notifier.start()
            except Exception:
                _logger.warning("MQTT notifier startup failed; notifications are only logged", exc_info=True)
                notifier.stop()
                return
            self._mqtt = notifier
            self._emitter.notifier = notifier

    # ------------------------------------------------------------------
    # Motor state
    # ------------------------------------------------------------------

    def _device(self, device_id: str | None) -> str:
        return device_id or self._config.default_device_id

    async def get_motor_state(self, device_id: str | None = None) -> MotorState:
        return await self._store.get(self._device(device_id))

    async def get_all_motor_states(self) -> list[MotorState]:
        return await self._store.all()

    async def get_system_health(self) -> SystemHealth:
        return SystemHealth.from_states(await self._store.all())

    async def log_system_status(self) -> SystemHealth:
        health = await self.get_system_health()
        _logger.info(
            "[MOTOR SYSTEM] Devices: %d, Online: %d, Running: %d, Protected: %d",
            health.total_devices,
            health.online_devices,
            health.running_motors,
            health.protected_motors,
        )
        return health

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def issue_command(
        self,
        request: CommandRequest | Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> MotorState:
        """Validate and enqueue a motor command.

        Accepts a :class:`CommandRequest`, a mapping, or keyword fields
        (``device_id``, ``action``, ``target_level``, ``reason``, ``source``).
        Malformed fields raise :class:`CommandValidationError`.
        """
        if not isinstance(request, CommandRequest):
            payload = {**(request or {}), **fields}
            try:
                request = CommandRequest.model_validate(payload)
            except ValidationError as exc:
                raise CommandValidationError(
                    f"Invalid motor command: {exc}",
                    device_id=str(payload.get("device_id") or ""),
                    action=str(payload.get("action") or ""),
                ) from exc
        return await self._commands.issue(request)

    async def poll_pending_command(self, device_id: str | None = None) -> OutboundCommand | None:
        return await self._commands.poll(self._device(device_id))

    async def acknowledge_command(
        self,
        device_id: str | None,
        command_id: str,
        success: bool,
        error_message: str | None = None,
    ) -> CommandAck:
        try:
            ack = AckRequest(command_id=command_id, success=success, error_message=error_message)
        except ValidationError as exc:
            raise CommandValidationError(f"Invalid acknowledgement: {exc}", device_id=device_id or "") from exc
        return await self._commands.acknowledge(self._device(device_id), ack)

    async def heartbeat(self, report: HeartbeatReport | Mapping[str, Any]) -> MotorState:
        if not isinstance(report, HeartbeatReport):
            report = HeartbeatReport.model_validate(report)
        return await self._commands.heartbeat(report)

    async def clear_pending_states(self, device_id: str | None = None) -> MotorState:
        return await self._commands.clear_pending(self._device(device_id))

    # ------------------------------------------------------------------
    # Sensor interlock
    # ------------------------------------------------------------------

    async def set_override(
        self,
        device_id: str | None,
        enabled: bool,
        reason: str | None = None,
    ) -> OverrideRecord | None:
        return await self._overrides.set(self._device(device_id), enabled, reason)

    async def force_sensor_check(self, device_id: str | None = None) -> InterlockAction:
        return await self._interlock.check_device(self._device(device_id))

    async def get_sensor_pause_status(self, device_id: str | None = None) -> SensorPauseRecord | None:
        return await self._interlock.pause_status(self._device(device_id))

    async def get_sensor_status(self, device_id: str | None = None) -> SensorMonitoringStatus:
        device_id = self._device(device_id)
        overridden = await self._overrides.is_overridden(device_id)
        return SensorMonitoringStatus(
            device_id=device_id,
            monitoring_active=not overridden,
            is_overridden=overridden,
            pause_status=await self._interlock.pause_status(device_id),
        )

    # ------------------------------------------------------------------
    # Sweeps (also run by the periodic tasks)
    # ------------------------------------------------------------------

    async def run_liveness_sweep(self) -> list[str]:
        return await self._liveness.run()

    async def run_reconciliation_sweep(self) -> dict[str, EventType]:
        return await self._reconciliation.run()

    async def run_interlock_tick(self) -> dict[str, InterlockAction]:
        return await self._interlock.tick()
