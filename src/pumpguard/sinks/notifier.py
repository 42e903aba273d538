"""Notification fan-out interface and in-process implementations."""

from __future__ import annotations

import logging
from typing import Protocol

from pumpguard.models.notifications import NotificationEvent

_logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Structural interface of the observer fan-out collaborator."""

    async def publish(self, event: NotificationEvent) -> None: ...


class RecordingNotifier:
    """Collects published events in order."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    async def publish(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> list[NotificationEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self) -> None:
        self.events.clear()


class LoggingNotifier:
    """Logs events at DEBUG; the default when no broker is configured."""

    async def publish(self, event: NotificationEvent) -> None:
        _logger.debug("notify %s device=%s", event.kind, event.device_id)
