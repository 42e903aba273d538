"""pumpguard - Motor command and sensor-safety coordinator for pump controllers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pumpguard")
except PackageNotFoundError:
    __version__ = "0+local"
from pumpguard.config import PumpGuardConfig
from pumpguard.coordinator import MotorCoordinator
from pumpguard.exceptions import (
    CommandConflictError,
    CommandError,
    CommandValidationError,
    DeviceUnavailableError,
    PumpGuardConfigError,
    PumpGuardError,
    SinkError,
    StoreError,
)
from pumpguard.interlock import InterlockAction
from pumpguard.models import (
    CommandAck,
    CommandRequest,
    CommandSource,
    ControlMode,
    HeartbeatReport,
    MotorAction,
    MotorState,
    NotificationEvent,
    OutboundCommand,
    OverrideRecord,
    SensorMonitoringStatus,
    SensorPauseRecord,
    SensorSnapshot,
    SystemHealth,
)

__all__ = [
    "__version__",
    "CommandAck",
    "CommandConflictError",
    "CommandError",
    "CommandRequest",
    "CommandSource",
    "CommandValidationError",
    "ControlMode",
    "DeviceUnavailableError",
    "HeartbeatReport",
    "InterlockAction",
    "MotorAction",
    "MotorCoordinator",
    "MotorState",
    "NotificationEvent",
    "OutboundCommand",
    "OverrideRecord",
    "PumpGuardConfig",
    "PumpGuardConfigError",
    "PumpGuardError",
    "SensorMonitoringStatus",
    "SensorPauseRecord",
    "SensorSnapshot",
    "SinkError",
    "StoreError",
    "SystemHealth",
]
