"""Command request, outbound command, and acknowledgement models."""

from __future__ import annotations

import secrets

from pydantic import Field, field_validator

from pumpguard.models._base import PumpBaseModel, UtcDatetime, utcnow
from pumpguard.models.motor import CommandSource, MotorAction


def new_command_id() -> str:
    """Return a fresh, unguessable command id."""
    return f"cmd_{secrets.token_hex(8)}"


class CommandRequest(PumpBaseModel):
    """Operator (or interlock) request to change the motor state."""

    device_id: str | None = None
    action: MotorAction
    target_level: float | None = Field(default=None, ge=0, le=100)
    reason: str | None = None
    source: CommandSource = CommandSource.API

    @field_validator("device_id")
    @classmethod
    def _strip_device_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class OutboundCommand(PumpBaseModel):
    """Command waiting for the device to poll it.

    At most one lives per device; issuing a new one replaces it.
    """

    action: MotorAction
    target_level: float | None = None
    reason: str
    source: CommandSource
    command_id: str = Field(default_factory=new_command_id)
    issued_at: UtcDatetime = Field(default_factory=utcnow)
    retrieved_at: UtcDatetime | None = None


class AckRequest(PumpBaseModel):
    """Device report on the outcome of an executed command."""

    command_id: str
    success: bool
    error_message: str | None = None

    @field_validator("command_id")
    @classmethod
    def _command_id_non_empty(cls, value: str) -> str:
        command_id = value.strip()
        if not command_id:
            raise ValueError("command_id must be non-empty")
        return command_id


class CommandAck(PumpBaseModel):
    """Result of acknowledging a command.

    ``matched`` is ``False`` when the command had already been
    acknowledged, expired, or superseded; that case is not an error.
    """

    device_id: str
    command_id: str
    success: bool
    matched: bool
    error_message: str | None = None
