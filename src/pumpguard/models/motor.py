"""Motor state, heartbeat reports, and system health models."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field, field_validator

from pumpguard.models._base import PumpBaseModel, UtcDatetime, utcnow


class ControlMode(enum.StrEnum):
    """Who decides when the pump runs."""

    AUTO = "auto"
    MANUAL = "manual"


class CommandSource(enum.StrEnum):
    """Origin of the most recent command."""

    MOBILE = "mobile"
    MCU = "mcu"
    API = "api"
    AUTO = "auto"


class MotorAction(enum.StrEnum):
    """Commands understood by the device firmware."""

    START = "start"
    STOP = "stop"
    TARGET = "target"
    AUTO = "auto"
    MANUAL = "manual"
    RESET_PROTECTION = "reset_protection"
    ENABLE_BUZZER = "enable_buzzer"
    DISABLE_BUZZER = "disable_buzzer"

    @property
    def runs_motor(self) -> bool:
        """Whether the action would leave the motor running."""
        return self in (MotorAction.START, MotorAction.TARGET)


def _non_empty_device_id(value: str) -> str:
    device_id = value.strip()
    if not device_id:
        raise ValueError("device_id must be non-empty")
    return device_id


class MotorState(PumpBaseModel):
    """Per-device motor record.

    Confirmed fields mirror the last heartbeat (or the optimistic preview
    of the last command). ``pending_*`` fields shadow the state a command
    is expected to produce until a heartbeat confirms it or a sweep gives
    up on it.
    """

    CONFIRMED_FIELDS: ClassVar[tuple[str, ...]] = (
        "motor_running",
        "control_mode",
        "target_mode_active",
        "current_target_level",
        "target_description",
        "protection_active",
        "buzzer_muted",
        "current_amps",
        "power_watts",
        "runtime_minutes",
        "total_runtime_hours",
    )
    PENDING_FIELDS: ClassVar[tuple[str, ...]] = (
        "pending_motor_running",
        "pending_control_mode",
        "pending_target_active",
        "pending_target_level",
        "pending_command_id",
        "pending_command_timestamp",
    )

    device_id: str

    motor_running: bool = False
    control_mode: ControlMode = ControlMode.AUTO
    target_mode_active: bool = False
    current_target_level: float | None = None
    target_description: str | None = None
    protection_active: bool = False
    buzzer_muted: bool = False
    current_amps: float = 0.0
    power_watts: float = 0.0
    runtime_minutes: int = 0
    total_runtime_hours: int = 0
    mcu_online: bool = False
    last_heartbeat: UtcDatetime | None = None

    last_command_source: CommandSource | None = None
    last_command_reason: str | None = None

    pending_motor_running: bool | None = None
    pending_control_mode: ControlMode | None = None
    pending_target_active: bool | None = None
    pending_target_level: float | None = None
    pending_command_id: str | None = None
    pending_command_timestamp: UtcDatetime | None = None

    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @field_validator("device_id")
    @classmethod
    def _device_id_non_empty(cls, value: str) -> str:
        return _non_empty_device_id(value)

    @property
    def has_pending(self) -> bool:
        """Whether an unconfirmed command marker is set."""
        return self.pending_command_id is not None

    def pending_age_seconds(self, now: datetime) -> float | None:
        if self.pending_command_timestamp is None:
            return None
        return (now - self.pending_command_timestamp).total_seconds()

    def heartbeat_age_seconds(self, now: datetime) -> float | None:
        if self.last_heartbeat is None:
            return None
        return (now - self.last_heartbeat).total_seconds()

    def cleared_pending(self) -> dict[str, Any]:
        """Update mapping that resets every ``pending_*`` field."""
        return dict.fromkeys(self.PENDING_FIELDS)


class HeartbeatReport(PumpBaseModel):
    """Ground-truth motor state reported by the device."""

    device_id: str
    motor_running: bool
    control_mode: ControlMode
    target_mode_active: bool = False
    current_target_level: float | None = None
    target_description: str | None = None
    protection_active: bool
    buzzer_muted: bool = False
    current_amps: float = Field(default=0.0, ge=0)
    power_watts: float = Field(default=0.0, ge=0)
    runtime_minutes: int = Field(default=0, ge=0)
    total_runtime_hours: int = Field(default=0, ge=0)

    @field_validator("device_id")
    @classmethod
    def _device_id_non_empty(cls, value: str) -> str:
        return _non_empty_device_id(value)

    def confirmed_fields(self) -> dict[str, Any]:
        """All confirmed fields, including explicit ``None`` for absent optionals.

        A heartbeat overwrites every confirmed field: a device that no
        longer reports a target level clears the stored one.
        """
        return {name: getattr(self, name) for name in MotorState.CONFIRMED_FIELDS}


class SystemHealth(PumpBaseModel):
    """Aggregate view across all known devices."""

    total_devices: int
    online_devices: int
    offline_devices: int
    running_motors: int
    protected_motors: int
    system_healthy: bool

    @classmethod
    def from_states(cls, states: list[MotorState]) -> SystemHealth:
        online = sum(1 for s in states if s.mcu_online)
        protected = sum(1 for s in states if s.protection_active)
        return cls(
            total_devices=len(states),
            online_devices=online,
            offline_devices=len(states) - online,
            running_motors=sum(1 for s in states if s.motor_running),
            protected_motors=protected,
            system_healthy=protected == 0 and online == len(states),
        )
