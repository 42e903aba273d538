"""Motor state store.

This is the only component allowed to write :class:`MotorState` records.
Every write goes to the durable keyed store first and then refreshes the
cached copy; reads prefer the cache.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from pumpguard._constants import MOTOR_STATE_KEY, key_for
from pumpguard.exceptions import StoreError
from pumpguard.models._base import utcnow
from pumpguard.models.motor import MotorState
from pumpguard.state.backend import KeyedStore
from pumpguard.state.cache import ExpiringCache

_logger = logging.getLogger(__name__)

Changes = dict[str, Any] | None
Mutation = Callable[[MotorState], Changes | Awaitable[Changes]]
"""Return the fields to change, or ``None``/``{}`` to leave the record alone."""


class MotorStateStore:
    """Durable + cached store of one :class:`MotorState` per device.

    Read-modify-write cycles for a device are serialised with a per-device
    :class:`asyncio.Lock` so a command and a heartbeat racing on the same
    device cannot lose each other's update.
    """

    def __init__(
        self,
        backend: KeyedStore,
        cache: ExpiringCache,
        *,
        cache_ttl: float = 7200.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, device_id: str) -> asyncio.Lock:
        """Per-device lock guarding read-modify-write cycles."""
        lock = self._locks.get(device_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[device_id] = lock
        return lock

    async def _read(self, device_id: str) -> MotorState | None:
        key = key_for(MOTOR_STATE_KEY, device_id)
        cached = await self._cache.get(key)
        if cached is not None:
            try:
                return MotorState.model_validate(cached)
            except ValidationError:
                _logger.warning("Discarding unreadable cached motor state for %s", device_id, exc_info=True)
                await self._cache.delete(key)

        row = await self._backend.get(key)
        if row is None:
            return None
        state = MotorState.model_validate(row)
        await self._cache.set(key, state.to_record(), self._cache_ttl)
        _logger.debug("Motor state for %s loaded from backend and cached", device_id)
        return state

    async def _write(self, state: MotorState) -> None:
        key = key_for(MOTOR_STATE_KEY, state.device_id)
        record = state.to_record()
        try:
            await self._backend.put(key, record)
            await self._cache.set(key, record, self._cache_ttl)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"Failed to persist motor state for {state.device_id}: {exc}", key=key) from exc

    async def _load_or_create(self, device_id: str) -> MotorState:
        state = await self._read(device_id)
        if state is not None:
            return state
        now = self._clock()
        state = MotorState(device_id=device_id, created_at=now, updated_at=now)
        await self._write(state)
        _logger.info("Created default motor state for %s", device_id)
        return state

    async def find(self, device_id: str) -> MotorState | None:
        """Return the stored state, or ``None`` for an unknown device."""
        return await self._read(device_id)

    async def get(self, device_id: str) -> MotorState:
        """Return the stored state, creating safe defaults on first access."""
        async with self.lock(device_id):
            return await self._load_or_create(device_id)

    async def update(self, device_id: str, mutate: Mutation) -> MotorState:
        """Apply *mutate* to the device's state under the device lock.

        *mutate* sees the current record and returns (or, as a coroutine,
        resolves to) the fields to change.
        ``updated_at`` is stamped on every effective write.
        """
        async with self.lock(device_id):
            current = await self._load_or_create(device_id)
            changes = mutate(current)
            if inspect.isawaitable(changes):
                changes = await changes
            if not changes:
                return current
            updated = current.model_copy(update={**changes, "updated_at": self._clock()})
            await self._write(updated)
            return updated

    async def all(self) -> list[MotorState]:
        """All known devices, most recently updated first."""
        states: list[MotorState] = []
        for row in await self._backend.scan():
            try:
                states.append(MotorState.model_validate(row))
            except ValidationError:
                _logger.warning("Skipping unreadable motor state row", exc_info=True)
        states.sort(key=lambda s: s.updated_at, reverse=True)
        return states
