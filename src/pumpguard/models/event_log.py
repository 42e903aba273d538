"""Audit log entries written to the append-only event log sink."""

from __future__ import annotations

import enum

from pydantic import Field

from pumpguard.models._base import PumpBaseModel, UtcDatetime, utcnow


class EventSeverity(enum.StrEnum):
    INFO = "info"
    WARNING = "warning"
    HIGH = "high"
    CRITICAL = "critical"


class EventType(enum.StrEnum):
    MOTOR_COMMAND = "motor_command"
    MOTOR_COMMAND_ACK = "motor_command_ack"
    MOTOR_STATE_UPDATE = "motor_state_update"
    MCU_OFFLINE = "mcu_offline"
    RECONCILIATION_TIMEOUT = "reconciliation_timeout"
    PENDING_ORPHANED = "pending_orphaned"
    PENDING_CLEARED = "pending_cleared"
    PUMP_PAUSED_SENSOR = "pump_paused_sensor"
    PUMP_RESUMED_SENSOR = "pump_resumed_sensor"
    SENSOR_STATUS = "sensor_status"
    SENSOR_OVERRIDE = "sensor_override"


class EventLogEntry(PumpBaseModel):
    device_id: str
    event_type: EventType
    message: str
    severity: EventSeverity = EventSeverity.INFO
    created_at: UtcDatetime = Field(default_factory=utcnow)

    def to_payload(self) -> dict[str, str]:
        """Wire shape accepted by the audit log collaborator."""
        return {
            "device_id": self.device_id,
            "event_type": self.event_type.value,
            "message": self.message,
            "severity": self.severity.value,
        }
