"""Expiring key-value cache for ephemeral records.

Outbound commands, sensor pause records, overrides, sensor snapshots, and
the cached copy of each motor state live here. Values are JSON-compatible
dicts; every entry carries its own TTL.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from pumpguard.models._base import utcnow


class ExpiringCache(Protocol):
    """Structural cache interface.

    A networked cache (e.g. Redis ``SETEX``/``TTL``/``KEYS``) satisfies
    this directly; tests and single-process deployments use
    :class:`InMemoryExpiringCache`.
    """

    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def set(self, key: str, value: dict[str, Any], ttl: float) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def ttl(self, key: str) -> float | None: ...

    async def keys(self, prefix: str = "") -> list[str]: ...


@dataclass(slots=True)
class _Entry:
    value: dict[str, Any]
    expires_at: datetime


class InMemoryExpiringCache:
    """In-process :class:`ExpiringCache` driven by an injectable clock."""

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._live(key)
        return copy.deepcopy(entry.value) if entry is not None else None

    async def set(self, key: str, value: dict[str, Any], ttl: float) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self._entries[key] = _Entry(
            value=copy.deepcopy(value),
            expires_at=self._clock() + timedelta(seconds=ttl),
        )

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def ttl(self, key: str) -> float | None:
        entry = self._live(key)
        if entry is None:
            return None
        return (entry.expires_at - self._clock()).total_seconds()

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in list(self._entries) if key.startswith(prefix) and self._live(key) is not None)
