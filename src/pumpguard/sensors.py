"""Sensor snapshot sources for the interlock."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import ValidationError

from pumpguard._constants import SENSOR_STATUS_PREFIX, device_id_from_sensor_key, sensor_status_key
from pumpguard.models.sensor import SensorSnapshot
from pumpguard.state.cache import ExpiringCache

_logger = logging.getLogger(__name__)


class SensorSnapshotSource(Protocol):
    """Read-only view of the latest sensor health per device."""

    async def device_ids(self) -> list[str]: ...

    async def latest(self, device_id: str) -> SensorSnapshot | None: ...


class CachedSensorSource:
    """Reads snapshots written by device-status ingestion into the expiring cache.

    Known devices are the ones with a live ``sensor:<device_id>:status``
    entry; a device whose snapshot expired drops out of the interlock loop.
    """

    def __init__(self, cache: ExpiringCache) -> None:
        self._cache = cache

    async def device_ids(self) -> list[str]:
        ids: list[str] = []
        for key in await self._cache.keys(SENSOR_STATUS_PREFIX):
            device_id = device_id_from_sensor_key(key)
            if device_id is not None:
                ids.append(device_id)
        return ids

    async def latest(self, device_id: str) -> SensorSnapshot | None:
        raw = await self._cache.get(sensor_status_key(device_id))
        if raw is None:
            return None
        try:
            return SensorSnapshot.model_validate(raw)
        except ValidationError:
            _logger.warning("Ignoring unreadable sensor status for %s", device_id, exc_info=True)
            return None

    async def store(
        self,
        device_id: str,
        snapshot: SensorSnapshot | dict[str, Any],
        *,
        ttl: float = 60.0,
    ) -> SensorSnapshot:
        """Write a snapshot (model or raw device-status payload) for *device_id*."""
        if not isinstance(snapshot, SensorSnapshot):
            snapshot = SensorSnapshot.model_validate(snapshot)
        await self._cache.set(sensor_status_key(device_id), snapshot.to_record(), ttl)
        return snapshot
