"""Best-effort audit logging and notification fan-out.

Collaborator failures here are caught and logged: they happen after the
state change they describe has already been written, and must not undo it.
"""

from __future__ import annotations

import logging

from pumpguard.models.event_log import EventLogEntry, EventSeverity, EventType
from pumpguard.models.notifications import NotificationEvent
from pumpguard.sinks.event_log import EventLogSink
from pumpguard.sinks.notifier import Notifier

_logger = logging.getLogger(__name__)


class Emitter:
    """Routes audit entries and notifications to their sinks."""

    def __init__(self, event_log: EventLogSink, notifier: Notifier) -> None:
        self.event_log = event_log
        self.notifier = notifier

    async def log(
        self,
        device_id: str,
        event_type: EventType,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> None:
        entry = EventLogEntry(device_id=device_id, event_type=event_type, message=message, severity=severity)
        try:
            await self.event_log.insert_event_log(entry)
        except Exception:
            _logger.warning("Event log write failed for %s (%s)", device_id, event_type.value, exc_info=True)

    async def notify(self, *events: NotificationEvent) -> None:
        for event in events:
            try:
                await self.notifier.publish(event)
            except Exception:
                _logger.warning("Notification %s for %s failed", event.kind, event.device_id, exc_info=True)
