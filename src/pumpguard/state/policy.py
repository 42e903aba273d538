"""Deterministic motor command and reconciliation policy.

This module intentionally contains *no* I/O. It decides what a command
is expected to do, whether it may be issued, and when a pending marker
is resolved, stuck, or orphaned.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pumpguard._constants import TARGET_LEVEL_TOLERANCE
from pumpguard.exceptions import CommandConflictError, CommandValidationError, DeviceUnavailableError
from pumpguard.models.command import OutboundCommand
from pumpguard.models.motor import ControlMode, HeartbeatReport, MotorAction, MotorState


def target_description(level: float) -> str:
    return f'Target {level:g}"'


def expected_preview(action: MotorAction, target_level: float | None = None) -> dict[str, Any]:
    """Confirmed-field delta the device should reach after *action*."""
    if action is MotorAction.START:
        return {"motor_running": True, "target_mode_active": False}
    if action is MotorAction.STOP:
        return {"motor_running": False, "target_mode_active": False}
    if action is MotorAction.TARGET:
        assert target_level is not None  # noqa: S101
        return {
            "motor_running": True,
            "target_mode_active": True,
            "current_target_level": target_level,
            "target_description": target_description(target_level),
        }
    if action is MotorAction.AUTO:
        return {"control_mode": ControlMode.AUTO}
    if action is MotorAction.MANUAL:
        return {"control_mode": ControlMode.MANUAL}
    if action is MotorAction.RESET_PROTECTION:
        return {"protection_active": False}
    if action is MotorAction.ENABLE_BUZZER:
        return {"buzzer_muted": False}
    if action is MotorAction.DISABLE_BUZZER:
        return {"buzzer_muted": True}
    return {}


def pending_shadow(action: MotorAction, target_level: float | None = None) -> dict[str, Any]:
    """``pending_*`` value fields recording what *action* is expected to produce.

    Protection and buzzer actions have no shadow field; their marker is
    resolved by the first heartbeat that follows.
    """
    if action is MotorAction.START:
        return {"pending_motor_running": True, "pending_target_active": False}
    if action is MotorAction.STOP:
        return {"pending_motor_running": False, "pending_target_active": False}
    if action is MotorAction.TARGET:
        return {
            "pending_motor_running": True,
            "pending_target_active": True,
            "pending_target_level": target_level,
        }
    if action is MotorAction.AUTO:
        return {"pending_control_mode": ControlMode.AUTO}
    if action is MotorAction.MANUAL:
        return {"pending_control_mode": ControlMode.MANUAL}
    return {}


def validate_command(
    state: MotorState,
    action: MotorAction,
    target_level: float | None,
) -> None:
    """Reject a command that must not be issued against *state*.

    Order matters: a latched protection flag is reported before a bad
    target level, which is reported before connectivity.
    """
    if action.runs_motor and state.protection_active:
        raise CommandConflictError(
            f"Cannot {action.value} motor on {state.device_id}: protection system is active",
            device_id=state.device_id,
            action=action.value,
        )
    if action is MotorAction.TARGET and (target_level is None or target_level <= 0):
        raise CommandValidationError(
            "Target level must be specified and greater than 0",
            device_id=state.device_id,
            action=action.value,
        )
    if action.runs_motor and not state.mcu_online:
        raise DeviceUnavailableError(
            f"Cannot execute {action.value} on {state.device_id}: MCU is offline",
            device_id=state.device_id,
            action=action.value,
        )


def pending_resolved(state: MotorState, report: HeartbeatReport) -> bool:
    """Whether *report* confirms every shadowed field of the pending command."""
    if not state.has_pending:
        return False
    if state.pending_motor_running is not None and state.pending_motor_running != report.motor_running:
        return False
    if state.pending_control_mode is not None and state.pending_control_mode != report.control_mode:
        return False
    if state.pending_target_active is not None and state.pending_target_active != report.target_mode_active:
        return False
    if state.pending_target_level is not None:
        if report.current_target_level is None:
            return False
        if abs(state.pending_target_level - report.current_target_level) >= TARGET_LEVEL_TOLERANCE:
            return False
    return True


def is_heartbeat_stale(state: MotorState, now: datetime, threshold_seconds: float) -> bool:
    """Whether an online device has missed its heartbeat window."""
    if not state.mcu_online:
        return False
    age = state.heartbeat_age_seconds(now)
    return age is None or age > threshold_seconds


def is_pending_stuck(state: MotorState, now: datetime, threshold_seconds: float) -> bool:
    if not state.has_pending:
        return False
    age = state.pending_age_seconds(now)
    # A marker without a timestamp can never age out on its own.
    return age is None or age > threshold_seconds


def is_pending_orphaned(
    state: MotorState,
    live_command: OutboundCommand | None,
    now: datetime,
    grace_seconds: float,
) -> bool:
    """Whether the pending marker points at a command that no longer exists."""
    if not state.has_pending:
        return False
    if live_command is not None and live_command.command_id == state.pending_command_id:
        return False
    age = state.pending_age_seconds(now)
    return age is None or age > grace_seconds
