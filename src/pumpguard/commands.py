"""Command protocol between operators and poll-only devices.

The device cannot receive pushed commands. An issued command waits in the
expiring cache under ``motor_command:<device_id>`` until the device polls
it and acknowledges it, or until it expires. The motor state gets an
optimistic preview of the expected result immediately, shadowed by
``pending_*`` fields that a later heartbeat confirms.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from pumpguard._constants import MOTOR_COMMAND_KEY, key_for
from pumpguard._emit import Emitter
from pumpguard.config import PumpGuardConfig
from pumpguard.exceptions import StoreError
from pumpguard.models._base import utcnow
from pumpguard.models.command import AckRequest, CommandAck, CommandRequest, OutboundCommand
from pumpguard.models.event_log import EventSeverity, EventType
from pumpguard.models.motor import HeartbeatReport, MotorAction, MotorState
from pumpguard.models.notifications import SystemDataRefresh
from pumpguard.state.cache import ExpiringCache
from pumpguard.state.policy import expected_preview, pending_resolved, pending_shadow, validate_command
from pumpguard.state.store import MotorStateStore

_logger = logging.getLogger(__name__)

DEFAULT_COMMAND_REASON = "API command"


class CommandProtocol:
    """Issue, poll, and acknowledge motor commands; apply heartbeats."""

    def __init__(
        self,
        store: MotorStateStore,
        cache: ExpiringCache,
        emitter: Emitter,
        config: PumpGuardConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cache = cache
        self._emitter = emitter
        self._config = config
        self._clock = clock

    # ------------------------------------------------------------------
    # Outbound command slot
    # ------------------------------------------------------------------

    async def _read_command(self, device_id: str) -> OutboundCommand | None:
        key = key_for(MOTOR_COMMAND_KEY, device_id)
        raw = await self._cache.get(key)
        if raw is None:
            return None
        try:
            return OutboundCommand.model_validate(raw)
        except ValidationError:
            _logger.warning("Dropping unreadable outbound command for %s", device_id, exc_info=True)
            await self._cache.delete(key)
            return None

    async def _write_command(self, device_id: str, command: OutboundCommand, ttl: float) -> None:
        key = key_for(MOTOR_COMMAND_KEY, device_id)
        try:
            await self._cache.set(key, command.to_record(), ttl)
        except Exception as exc:
            raise StoreError(f"Failed to store outbound command for {device_id}: {exc}", key=key) from exc

    async def _withdraw(
        self,
        device_id: str,
        command: OutboundCommand,
        replaced: tuple[OutboundCommand, float] | None,
    ) -> None:
        """Take *command* back out of the slot after its state write failed.

        The command it superseded, if any, is put back with the lifetime it
        had left. A newer command queued in the meantime is left alone.
        """
        key = key_for(MOTOR_COMMAND_KEY, device_id)
        async with self._store.lock(device_id):
            live = await self._read_command(device_id)
            if live is None or live.command_id != command.command_id:
                return
            if replaced is not None:
                await self._write_command(device_id, *replaced)
            else:
                try:
                    await self._cache.delete(key)
                except Exception as exc:
                    raise StoreError(f"Failed to withdraw outbound command for {device_id}: {exc}", key=key) from exc
        _logger.warning("Withdrew command %s for %s: motor state write failed", command.command_id, device_id)

    async def live_command(self, device_id: str) -> OutboundCommand | None:
        """The command currently waiting for *device_id*, if any."""
        return await self._read_command(device_id)

    # ------------------------------------------------------------------
    # Operator side
    # ------------------------------------------------------------------

    async def issue(self, request: CommandRequest) -> MotorState:
        """Validate and enqueue *request*, then apply its optimistic preview.

        Raises
        ------
        CommandConflictError
            ``start``/``target`` while the protection flag is latched.
        CommandValidationError
            ``target`` without a positive target level.
        DeviceUnavailableError
            ``start``/``target`` while the device is offline.
        StoreError
            The outbound command or the motor state could not be written.
            A command whose state write failed is withdrawn from the queue.
        """
        device_id = request.device_id or self._config.default_device_id
        action = request.action
        target_level = request.target_level if action is MotorAction.TARGET else None
        reason = request.reason or DEFAULT_COMMAND_REASON
        issued: list[OutboundCommand] = []
        replaced: list[tuple[OutboundCommand, float]] = []

        async def _apply(state: MotorState) -> dict[str, Any]:
            validate_command(state, action, target_level)
            now = self._clock()
            prior = await self._read_command(device_id)
            if prior is not None:
                remaining = await self._cache.ttl(key_for(MOTOR_COMMAND_KEY, device_id))
                if remaining:
                    replaced.append((prior, remaining))
            command = OutboundCommand(
                action=action,
                target_level=target_level,
                reason=reason,
                source=request.source,
                issued_at=now,
            )
            # Last writer wins: this replaces any unretrieved command.
            await self._write_command(device_id, command, self._config.command_ttl)
            issued.append(command)

            changes: dict[str, Any] = {
                **expected_preview(action, target_level),
                **state.cleared_pending(),
                **pending_shadow(action, target_level),
                "pending_command_id": command.command_id,
                "pending_command_timestamp": now,
                "last_command_source": request.source,
                "last_command_reason": reason,
            }
            if self._config.command_marks_online:
                changes["mcu_online"] = True
            return changes

        try:
            state = await self._store.update(device_id, _apply)
        except StoreError:
            if issued:
                await self._withdraw(device_id, issued[0], replaced[0] if replaced else None)
            raise
        command = issued[0]
        _logger.info(
            "Issued %s to %s (command_id=%s source=%s)",
            action.value,
            device_id,
            command.command_id,
            request.source.value,
        )

        await self._emitter.log(
            device_id,
            EventType.MOTOR_COMMAND,
            f"Motor command: {action.value} - {request.reason or 'No reason'}",
        )
        await self._emitter.notify(SystemDataRefresh(device_id=device_id))
        return state

    async def clear_pending(self, device_id: str) -> MotorState:
        """Drop every ``pending_*`` marker without touching confirmed fields."""
        cleared: list[str] = []

        def _apply(state: MotorState) -> dict[str, Any] | None:
            if not state.has_pending:
                return None
            cleared.append(state.pending_command_id or "")
            return state.cleared_pending()

        state = await self._store.update(device_id, _apply)
        if cleared:
            _logger.info("Cleared pending command %s for %s", cleared[0], device_id)
            await self._emitter.log(
                device_id,
                EventType.PENDING_CLEARED,
                f"Pending command {cleared[0]} cleared manually",
            )
            await self._emitter.notify(SystemDataRefresh(device_id=device_id))
        return state

    # ------------------------------------------------------------------
    # Device side
    # ------------------------------------------------------------------

    async def poll(self, device_id: str) -> OutboundCommand | None:
        """Hand the live command to the device and shorten its lifetime.

        The first retrieval stamps ``retrieved_at``. The remaining TTL is
        capped at ``retrieved_command_ttl``; it is never extended.
        """
        key = key_for(MOTOR_COMMAND_KEY, device_id)
        async with self._store.lock(device_id):
            command = await self._read_command(device_id)
            if command is None:
                return None
            remaining = await self._cache.ttl(key)
            if remaining is None:
                return None
            if command.retrieved_at is None:
                command = command.model_copy(update={"retrieved_at": self._clock()})
            await self._write_command(device_id, command, min(remaining, self._config.retrieved_command_ttl))

        _logger.debug("Command %s retrieved by %s", command.command_id, device_id)
        return command

    async def acknowledge(self, device_id: str, ack: AckRequest) -> CommandAck:
        """Remove the acknowledged command from the slot.

        Acknowledging an id that is no longer live (already acknowledged,
        expired, or superseded) is a no-op. Pending markers on the motor
        state are left for heartbeat reconciliation.
        """
        key = key_for(MOTOR_COMMAND_KEY, device_id)
        async with self._store.lock(device_id):
            live = await self._read_command(device_id)
            matched = live is not None and live.command_id == ack.command_id
            if matched:
                await self._cache.delete(key)

        result = CommandAck(
            device_id=device_id,
            command_id=ack.command_id,
            success=ack.success,
            matched=matched,
            error_message=ack.error_message,
        )
        if not matched:
            _logger.debug("Ignoring ack for %s on %s: not the live command", ack.command_id, device_id)
            return result

        outcome = "executed successfully" if ack.success else "failed"
        message = f"Command {ack.command_id} {outcome}"
        if ack.error_message:
            message = f"{message}: {ack.error_message}"
        _logger.info("Command acknowledged for %s: %s", device_id, message)
        await self._emitter.log(
            device_id,
            EventType.MOTOR_COMMAND_ACK,
            message,
            EventSeverity.INFO if ack.success else EventSeverity.WARNING,
        )
        return result

    async def heartbeat(self, report: HeartbeatReport) -> MotorState:
        """Overwrite confirmed fields with *report* and reconcile pending markers."""
        device_id = report.device_id
        before: list[MotorState] = []

        def _apply(state: MotorState) -> dict[str, Any]:
            before.append(state)
            changes: dict[str, Any] = {
                **report.confirmed_fields(),
                "last_heartbeat": self._clock(),
                "mcu_online": True,
            }
            if pending_resolved(state, report):
                changes.update(state.cleared_pending())
            return changes

        state = await self._store.update(device_id, _apply)
        previous = before[0]

        message = (
            f"Motor state updated: running={report.motor_running} "
            f"mode={report.control_mode.value} protection={report.protection_active}"
        )
        if previous.has_pending and not state.has_pending:
            _logger.info("Heartbeat from %s confirmed command %s", device_id, previous.pending_command_id)
            message = f"{message} (command {previous.pending_command_id} confirmed)"
        if not previous.mcu_online:
            _logger.info("Device %s is online", device_id)

        await self._emitter.log(device_id, EventType.MOTOR_STATE_UPDATE, message)
        if _observable_change(previous, state):
            await self._emitter.notify(SystemDataRefresh(device_id=device_id))
        return state


def _observable_change(previous: MotorState, current: MotorState) -> bool:
    return (
        previous.mcu_online != current.mcu_online
        or previous.motor_running != current.motor_running
        or previous.control_mode != current.control_mode
        or previous.protection_active != current.protection_active
        or previous.has_pending != current.has_pending
    )
