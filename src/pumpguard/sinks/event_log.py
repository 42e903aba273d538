"""Append-only audit log sinks."""

from __future__ import annotations

import json
import logging
from typing import Protocol

import aiohttp

from pumpguard.exceptions import SinkError
from pumpguard.models.event_log import EventLogEntry

_logger = logging.getLogger(__name__)


class EventLogSink(Protocol):
    """Structural interface of the audit log collaborator."""

    async def insert_event_log(self, entry: EventLogEntry) -> None: ...


class InMemoryEventLog:
    """Keeps every entry in a list; used by tests and diagnostics."""

    def __init__(self) -> None:
        self.entries: list[EventLogEntry] = []

    async def insert_event_log(self, entry: EventLogEntry) -> None:
        self.entries.append(entry)

    def of_type(self, event_type: str) -> list[EventLogEntry]:
        return [e for e in self.entries if e.event_type == event_type]


class LoggingEventLog:
    """Writes entries to the ``pumpguard.audit`` logger only."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("pumpguard.audit")

    async def insert_event_log(self, entry: EventLogEntry) -> None:
        self._logger.info(
            "[%s] %s %s: %s",
            entry.severity.value,
            entry.device_id,
            entry.event_type.value,
            entry.message,
        )


class HttpEventLogSink:
    """POSTs each entry as JSON to an audit endpoint."""

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 5.0,
    ) -> None:
        self._url = url
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def insert_event_log(self, entry: EventLogEntry) -> None:
        body = json.dumps(entry.to_payload(), separators=(",", ":"))
        headers = {"content-type": "application/json; charset=UTF-8"}

        _logger.debug("POST %s event_type=%s", self._url, entry.event_type.value)

        try:
            async with self._http.post(self._url, data=body, headers=headers, timeout=self._timeout) as resp:
                if resp.status >= 300:
                    text = await resp.text()
                    raise SinkError(
                        f"HTTP {resp.status} from event log: {text[:200]}",
                        status_code=resp.status,
                        endpoint=self._url,
                    )
        except SinkError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise SinkError(
                f"Event log request to {self._url} failed: {exc}",
                endpoint=self._url,
            ) from exc
