"""Internal constants shared across the library."""

DEFAULT_DEVICE_ID = "esp32_controller_001"

# ------------------------------------------------------------------
# Cache key layout
# ------------------------------------------------------------------

MOTOR_STATE_KEY = "motor_state:{device_id}"
MOTOR_COMMAND_KEY = "motor_command:{device_id}"
SENSOR_PAUSE_KEY = "sensor_pause:{device_id}"
SENSOR_OVERRIDE_KEY = "sensor_override:{device_id}"
SENSOR_STATUS_PREFIX = "sensor:"
SENSOR_STATUS_SUFFIX = ":status"


def key_for(template: str, device_id: str) -> str:
    """Render a cache key template for *device_id*."""
    return template.format(device_id=device_id)


def sensor_status_key(device_id: str) -> str:
    return f"{SENSOR_STATUS_PREFIX}{device_id}{SENSOR_STATUS_SUFFIX}"


def device_id_from_sensor_key(key: str) -> str | None:
    """Extract the device id from a ``sensor:<id>:status`` key."""
    if not key.startswith(SENSOR_STATUS_PREFIX) or not key.endswith(SENSOR_STATUS_SUFFIX):
        return None
    device_id = key[len(SENSOR_STATUS_PREFIX) : -len(SENSOR_STATUS_SUFFIX)]
    return device_id or None


# ------------------------------------------------------------------
# Sensor pause resume estimate (minutes)
# ------------------------------------------------------------------

RESUME_BASE_MINUTES = 5
RESUME_DISCONNECTED_MINUTES = 10
RESUME_TIMEOUT_MINUTES = 3
RESUME_INVALID_READING_MINUTES = 2

# Pending target level comparison tolerance.
TARGET_LEVEL_TOLERANCE = 0.1
