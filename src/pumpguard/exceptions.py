"""Custom exception hierarchy for pumpguard."""

from __future__ import annotations


class PumpGuardError(Exception):
    """Base exception for all pumpguard errors."""


class PumpGuardConfigError(PumpGuardError):
    """Invalid or missing configuration."""


class CommandError(PumpGuardError):
    """A motor command was rejected before it was issued."""

    def __init__(
        self,
        message: str,
        *,
        device_id: str = "",
        action: str = "",
    ) -> None:
        self.device_id = device_id
        self.action = action
        super().__init__(message)


class CommandValidationError(CommandError, ValueError):
    """Malformed or missing command fields (e.g. no target level).

    Rejected synchronously; retrying the same request cannot succeed.
    """


class CommandConflictError(CommandError):
    """The command conflicts with the current motor state.

    Raised when ``start``/``target`` is requested while the device's
    protection flag is latched. A ``reset_protection`` command must be
    confirmed first.
    """


class DeviceUnavailableError(CommandError):
    """The device is offline and the command requires connectivity.

    Callers may retry once a heartbeat has brought the device back online.
    """


class StoreError(PumpGuardError):
    """A must-succeed write to the state store or the ephemeral cache failed."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class SinkError(PumpGuardError):
    """An event-log or notification collaborator failed.

    The core catches these and logs them; they never roll back a state
    change that has already been written.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)
