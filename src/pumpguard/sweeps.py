"""Liveness and pending-marker reconciliation sweeps."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pumpguard._emit import Emitter
from pumpguard.commands import CommandProtocol
from pumpguard.config import PumpGuardConfig
from pumpguard.models._base import utcnow
from pumpguard.models.event_log import EventSeverity, EventType
from pumpguard.models.motor import MotorState
from pumpguard.models.notifications import SystemDataRefresh
from pumpguard.state.policy import is_heartbeat_stale, is_pending_orphaned, is_pending_stuck
from pumpguard.state.store import MotorStateStore

_logger = logging.getLogger(__name__)


class LivenessSweep:
    """Demote devices whose heartbeat has gone stale.

    One-directional: the sweep only ever sets ``mcu_online`` to ``False``.
    """

    def __init__(
        self,
        store: MotorStateStore,
        emitter: Emitter,
        config: PumpGuardConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._emitter = emitter
        self._threshold = config.offline_threshold
        self._clock = clock

    async def run(self) -> list[str]:
        """Return the ids of the devices marked offline."""
        demoted: list[str] = []
        for candidate in await self._store.all():
            if not is_heartbeat_stale(candidate, self._clock(), self._threshold):
                continue

            def _apply(state: MotorState) -> dict[str, Any] | None:
                # A heartbeat may have landed since the scan.
                if not is_heartbeat_stale(state, self._clock(), self._threshold):
                    return None
                return {"mcu_online": False}

            state = await self._store.update(candidate.device_id, _apply)
            if state.mcu_online:
                continue

            demoted.append(state.device_id)
            age = state.heartbeat_age_seconds(self._clock())
            last_seen = "never" if age is None else f"{age:.0f}s ago"
            _logger.warning("Device %s marked offline (last heartbeat %s)", state.device_id, last_seen)
            await self._emitter.log(
                state.device_id,
                EventType.MCU_OFFLINE,
                f"MCU marked offline: last heartbeat {last_seen}",
                EventSeverity.WARNING,
            )
            await self._emitter.notify(SystemDataRefresh(device_id=state.device_id))
        return demoted


class PendingReconciliationSweep:
    """Clear pending markers that were never confirmed by a heartbeat.

    A marker is *stuck* when it is older than ``pending_stuck_threshold``.
    It is *orphaned* when its command is no longer live in the command
    slot (acknowledged, expired, or superseded) and it is older than
    ``pending_orphan_grace``. Stuck markers are checked first. Neither
    case reverts the optimistic preview; the next heartbeat does that.
    """

    def __init__(
        self,
        store: MotorStateStore,
        commands: CommandProtocol,
        emitter: Emitter,
        config: PumpGuardConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._commands = commands
        self._emitter = emitter
        self._stuck_threshold = config.pending_stuck_threshold
        self._orphan_grace = config.pending_orphan_grace
        self._clock = clock

    async def run(self) -> dict[str, EventType]:
        """Return a map of cleared device ids to the reason they were cleared."""
        cleared: dict[str, EventType] = {}
        for candidate in await self._store.all():
            if not candidate.has_pending:
                continue
            verdict: list[tuple[EventType, str]] = []

            async def _apply(state: MotorState) -> dict[str, Any] | None:
                now = self._clock()
                if is_pending_stuck(state, now, self._stuck_threshold):
                    verdict.append((EventType.RECONCILIATION_TIMEOUT, state.pending_command_id or ""))
                    return state.cleared_pending()
                live = await self._commands.live_command(state.device_id)
                if is_pending_orphaned(state, live, now, self._orphan_grace):
                    verdict.append((EventType.PENDING_ORPHANED, state.pending_command_id or ""))
                    return state.cleared_pending()
                return None

            await self._store.update(candidate.device_id, _apply)
            if not verdict:
                continue

            event_type, command_id = verdict[0]
            cleared[candidate.device_id] = event_type
            if event_type is EventType.RECONCILIATION_TIMEOUT:
                message = f"Pending command {command_id} was not confirmed by the MCU; pending state cleared"
                severity = EventSeverity.WARNING
            else:
                message = f"Pending command {command_id} no longer queued; orphaned pending state cleared"
                severity = EventSeverity.INFO
            _logger.warning("Device %s: %s", candidate.device_id, message)
            await self._emitter.log(candidate.device_id, event_type, message, severity)
            await self._emitter.notify(SystemDataRefresh(device_id=candidate.device_id))
        return cleared
