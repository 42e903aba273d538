"""Notification events fanned out to observers.

The set of events is closed: every event carries a ``kind`` tag, the
device it concerns, and a timestamp. :data:`NotificationEvent` is a
discriminated union so a published JSON payload can be parsed back into
the right class with :func:`parse_notification`.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from pumpguard.models._base import PumpBaseModel, UtcDatetime, utcnow
from pumpguard.models.motor import ControlMode
from pumpguard.models.sensor import SensorFaultType, SensorHealth


class Severity(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(enum.StrEnum):
    SENSOR_OFFLINE = "sensor_offline"
    SENSOR_RECOVERED = "sensor_recovered"
    PUMP_PAUSED = "pump_paused"
    PUMP_RESUMED = "pump_resumed"


class _Notification(PumpBaseModel):
    device_id: str
    timestamp: UtcDatetime = Field(default_factory=utcnow)


# ------------------------------------------------------------------
# Status
# ------------------------------------------------------------------


class SensorState(PumpBaseModel):
    connected: bool
    working: bool


class PumpStatus(PumpBaseModel):
    running: bool
    paused_by_sensor: bool


class SensorMonitoringUpdate(_Notification):
    """Lightweight per-tick status for dashboards."""

    kind: Literal["sensor_monitoring_update"] = "sensor_monitoring_update"
    ground_sensor: SensorState
    roof_sensor: SensorState
    pump_status: PumpStatus


class SystemDataRefresh(_Notification):
    """Generic signal telling observers to re-read device data."""

    kind: Literal["system_data_refresh"] = "system_data_refresh"


# ------------------------------------------------------------------
# Pause / resume
# ------------------------------------------------------------------


class PumpPaused(_Notification):
    kind: Literal["pump_paused_sensor"] = "pump_paused_sensor"
    action: Literal["paused"] = "paused"
    reason: str
    sensor_status: SensorHealth


class PumpResumed(_Notification):
    kind: Literal["pump_resumed_sensor"] = "pump_resumed_sensor"
    action: Literal["resumed"] = "resumed"
    reason: str
    sensor_status: SensorHealth


class TankPauseDetail(PumpBaseModel):
    connected: bool
    working: bool
    error_type: SensorFaultType
    last_reading: float | None = None
    last_reading_time: UtcDatetime | None = None


class PumpStateBeforePause(PumpBaseModel):
    running: bool
    mode: ControlMode
    target_level: float | None = None
    runtime_minutes: int = 0


class PauseDetails(PumpBaseModel):
    ground_sensor: TankPauseDetail
    roof_sensor: TankPauseDetail
    pump_state_before_pause: PumpStateBeforePause
    estimated_resume_time: UtcDatetime
    requires_manual_intervention: bool


class PumpPauseDetails(_Notification):
    """Full diagnostic context of a sensor pause."""

    kind: Literal["pump_pause_details"] = "pump_pause_details"
    pause_reason: Literal["sensor_offline"] = "sensor_offline"
    pause_details: PauseDetails
    severity: Severity


# ------------------------------------------------------------------
# Override / alerts
# ------------------------------------------------------------------


class SensorOverrideUpdate(_Notification):
    kind: Literal["sensor_override_update"] = "sensor_override_update"
    override_enabled: bool
    reason: str


class SystemAlert(_Notification):
    """System-wide alert, not scoped to device subscribers."""

    kind: Literal["system_alert"] = "system_alert"
    type: AlertType
    severity: Severity
    message: str


NotificationEvent = Annotated[
    SensorMonitoringUpdate
    | SystemDataRefresh
    | PumpPaused
    | PumpResumed
    | PumpPauseDetails
    | SensorOverrideUpdate
    | SystemAlert,
    Field(discriminator="kind"),
]

_NOTIFICATION_ADAPTER: TypeAdapter[NotificationEvent] = TypeAdapter(NotificationEvent)


def parse_notification(payload: dict[str, Any]) -> NotificationEvent:
    """Parse a JSON payload back into its notification class."""
    return _NOTIFICATION_ADAPTER.validate_python(payload)
