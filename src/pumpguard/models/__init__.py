"""Data models for pumpguard records, requests, and notifications."""

from pumpguard.models._base import PumpBaseModel, UtcDatetime, utcnow
from pumpguard.models.command import AckRequest, CommandAck, CommandRequest, OutboundCommand, new_command_id
from pumpguard.models.event_log import EventLogEntry, EventSeverity, EventType
from pumpguard.models.motor import (
    CommandSource,
    ControlMode,
    HeartbeatReport,
    MotorAction,
    MotorState,
    SystemHealth,
)
from pumpguard.models.notifications import (
    AlertType,
    NotificationEvent,
    PumpPaused,
    PumpPauseDetails,
    PumpResumed,
    SensorMonitoringUpdate,
    SensorOverrideUpdate,
    Severity,
    SystemAlert,
    SystemDataRefresh,
    parse_notification,
)
from pumpguard.models.sensor import (
    OverrideRecord,
    PreviousMotorState,
    SensorFault,
    SensorFaultType,
    SensorHealth,
    SensorMonitoringStatus,
    SensorPauseRecord,
    SensorSnapshot,
    TankReading,
)

__all__ = [
    "AckRequest",
    "AlertType",
    "CommandAck",
    "CommandRequest",
    "CommandSource",
    "ControlMode",
    "EventLogEntry",
    "EventSeverity",
    "EventType",
    "HeartbeatReport",
    "MotorAction",
    "MotorState",
    "NotificationEvent",
    "OutboundCommand",
    "OverrideRecord",
    "PreviousMotorState",
    "PumpBaseModel",
    "PumpPauseDetails",
    "PumpPaused",
    "PumpResumed",
    "SensorFault",
    "SensorFaultType",
    "SensorHealth",
    "SensorMonitoringStatus",
    "SensorMonitoringUpdate",
    "SensorOverrideUpdate",
    "SensorPauseRecord",
    "SensorSnapshot",
    "Severity",
    "SystemAlert",
    "SystemDataRefresh",
    "SystemHealth",
    "TankReading",
    "UtcDatetime",
    "new_command_id",
    "parse_notification",
    "utcnow",
]
