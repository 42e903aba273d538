"""Durable keyed store for motor state records."""

from __future__ import annotations

import copy
from typing import Any, Protocol


class KeyedStore(Protocol):
    """Structural interface for the durable motor state table.

    Having a protocol here lets the same coordinator logic run against
    an in-process map in tests and a networked database in production.
    """

    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def put(self, key: str, value: dict[str, Any]) -> None: ...

    async def scan(self) -> list[dict[str, Any]]: ...


class InMemoryKeyedStore:
    """Dict-backed :class:`KeyedStore`."""

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Any]] = {}

    async def get(self, key: str) -> dict[str, Any] | None:
        row = self._rows.get(key)
        return copy.deepcopy(row) if row is not None else None

    async def put(self, key: str, value: dict[str, Any]) -> None:
        self._rows[key] = copy.deepcopy(value)

    async def scan(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(row) for row in self._rows.values()]
