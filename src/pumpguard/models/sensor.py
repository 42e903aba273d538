"""Water-level sensor snapshot, fault classification, and interlock records.

Sensor snapshots are produced by the device-status ingestion path and
stored in the expiring cache under ``sensor:<device_id>:status``. The
ingestion path writes the raw device status shape (``ground_tank`` /
``roof_tank`` with ``sensor_working`` and ``last_update``); both that
shape and the short field names validate.
"""

from __future__ import annotations

import enum

from pydantic import AliasChoices, Field

from pumpguard.models._base import PumpBaseModel, UtcDatetime, utcnow


class SensorFaultType(enum.StrEnum):
    """Why a tank sensor is considered unhealthy."""

    DISCONNECTED = "disconnected"
    NO_DATA = "no_data"
    INVALID_READING = "invalid_reading"
    TIMEOUT = "timeout"
    NONE = "none"


class PreviousMotorState(enum.StrEnum):
    RUNNING = "running"
    STOPPED = "stopped"


class TankReading(PumpBaseModel):
    """Latest sensor report for one tank."""

    connected: bool = False
    working: bool = Field(default=False, validation_alias=AliasChoices("working", "sensor_working"))
    level_percent: float | None = None
    observed_at: UtcDatetime | None = Field(
        default=None,
        validation_alias=AliasChoices("observed_at", "last_update"),
    )

    @property
    def healthy(self) -> bool:
        return self.connected and self.working


class SensorSnapshot(PumpBaseModel):
    """Latest sensor health for both tanks of a device."""

    ground: TankReading = Field(
        default_factory=TankReading,
        validation_alias=AliasChoices("ground", "ground_tank"),
    )
    roof: TankReading = Field(
        default_factory=TankReading,
        validation_alias=AliasChoices("roof", "roof_tank"),
    )

    @property
    def healthy(self) -> bool:
        return self.ground.healthy and self.roof.healthy

    def health(self) -> SensorHealth:
        return SensorHealth(
            ground_connected=self.ground.connected,
            ground_working=self.ground.working,
            roof_connected=self.roof.connected,
            roof_working=self.roof.working,
        )


class SensorHealth(PumpBaseModel):
    """Flat connectivity summary carried in notifications and pause records."""

    ground_connected: bool
    ground_working: bool
    roof_connected: bool
    roof_working: bool


class SensorFault(PumpBaseModel):
    """Fault classification for one tank."""

    error_type: SensorFaultType
    last_reading: float | None = None
    last_reading_time: UtcDatetime | None = None


class SensorPauseRecord(PumpBaseModel):
    """Created when the interlock stops a motor because of sensor faults."""

    paused_at: UtcDatetime = Field(default_factory=utcnow)
    reason: str
    previous_motor_state: PreviousMotorState
    estimated_resume_time: UtcDatetime
    requires_manual_intervention: bool
    sensor_status: SensorHealth
    ground_sensor_error: SensorFault
    roof_sensor_error: SensorFault


class OverrideRecord(PumpBaseModel):
    """Operator flag suspending the interlock for one device."""

    enabled: bool = True
    reason: str = "Manual override"
    set_at: UtcDatetime = Field(default_factory=utcnow)


class SensorMonitoringStatus(PumpBaseModel):
    """Diagnostic view of the interlock for one device."""

    device_id: str
    monitoring_active: bool
    is_overridden: bool
    pause_status: SensorPauseRecord | None = None
