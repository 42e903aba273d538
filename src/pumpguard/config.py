"""Coordinator configuration for pumpguard."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pumpguard._constants import DEFAULT_DEVICE_ID
from pumpguard.exceptions import PumpGuardConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


_POSITIVE_FIELDS: tuple[str, ...] = (
    "command_ttl",
    "retrieved_command_ttl",
    "motor_state_cache_ttl",
    "offline_threshold",
    "liveness_interval",
    "pending_stuck_threshold",
    "pending_orphan_grace",
    "reconciliation_interval",
    "interlock_interval",
    "sensor_pause_ttl",
    "override_ttl",
    "status_log_interval",
)


@dataclasses.dataclass(frozen=True)
class PumpGuardConfig:
    """Coordinator configuration.

    All durations are in seconds.

    Parameters
    ----------
    default_device_id : str
        Device used when a command request omits ``device_id``.
    command_ttl : float
        Lifetime of a freshly issued outbound command.
    retrieved_command_ttl : float
        Upper bound on the remaining lifetime of a command once the
        device has polled it.
    motor_state_cache_ttl : float
        TTL of the cached motor state copy, refreshed on every write.
    offline_threshold : float
        Heartbeat age after which the liveness sweep marks a device offline.
    liveness_interval : float
        Period of the liveness sweep.
    pending_stuck_threshold : float
        Age after which an unconfirmed pending marker is cleared.
    pending_orphan_grace : float
        Minimum age before a pending marker without a live outbound
        command is treated as orphaned.
    reconciliation_interval : float
        Period of the pending reconciliation sweep.
    interlock_interval : float
        Period of the sensor-safety interlock loop.
    sensor_pause_ttl : float
        Lifetime of a sensor pause record.
    override_ttl : float
        Lifetime of an interlock override.
    status_log_interval : float
        Period of the motor system status log line.
    command_marks_online : bool
        When ``True`` issuing a command also marks the device online.
        Off by default: only heartbeats prove a device is reachable.
    event_log_url : str or None
        Audit endpoint for :class:`pumpguard.sinks.HttpEventLogSink`.
    mqtt_host : str or None
        Broker for :class:`pumpguard.sinks.MqttNotifier`.
    mqtt_port : int
        Broker port.
    mqtt_topic_prefix : str
        Topic prefix for published notifications.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    """

    default_device_id: str = DEFAULT_DEVICE_ID
    command_ttl: float = 120.0
    retrieved_command_ttl: float = 60.0
    motor_state_cache_ttl: float = 2 * 3600
    offline_threshold: float = 120.0
    liveness_interval: float = 60.0
    pending_stuck_threshold: float = 180.0
    pending_orphan_grace: float = 60.0
    reconciliation_interval: float = 120.0
    interlock_interval: float = 10.0
    sensor_pause_ttl: float = 3600.0
    override_ttl: float = 24 * 3600
    status_log_interval: float = 15 * 60
    command_marks_online: bool = False
    event_log_url: str | None = None
    mqtt_host: str | None = None
    mqtt_port: int = 1883
    mqtt_topic_prefix: str = "pumpguard"
    mqtt_keepalive: int = 60

    def __post_init__(self) -> None:
        for name in _POSITIVE_FIELDS:
            value = getattr(self, name)
            if value <= 0:
                raise PumpGuardConfigError(f"{name} must be positive, got {value}")
        if not self.default_device_id.strip():
            raise PumpGuardConfigError("default_device_id must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> PumpGuardConfig:
        """Create configuration from environment variables.

        Reads optional ``PUMPGUARD_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        PumpGuardConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "PUMPGUARD_DEFAULT_DEVICE_ID": "default_device_id",
            "PUMPGUARD_EVENT_LOG_URL": "event_log_url",
            "PUMPGUARD_MQTT_HOST": "mqtt_host",
            "PUMPGUARD_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for field_name in _POSITIVE_FIELDS:
            val = env.get(f"PUMPGUARD_{field_name.upper()}")
            if val is None:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise PumpGuardConfigError(f"PUMPGUARD_{field_name.upper()} must be numeric, got {val!r}") from exc

        for env_key, field_name in (
            ("PUMPGUARD_MQTT_PORT", "mqtt_port"),
            ("PUMPGUARD_MQTT_KEEPALIVE", "mqtt_keepalive"),
        ):
            val = env.get(env_key)
            if val is not None:
                try:
                    config_kwargs[field_name] = int(val)
                except ValueError as exc:
                    raise PumpGuardConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        if "command_marks_online" not in overrides:
            config_kwargs["command_marks_online"] = _env_bool(env.get("PUMPGUARD_COMMAND_MARKS_ONLINE"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
