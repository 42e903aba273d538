"""Operator override suspending the sensor interlock for one device."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from pumpguard._constants import SENSOR_OVERRIDE_KEY, key_for
from pumpguard._emit import Emitter
from pumpguard.exceptions import StoreError
from pumpguard.models._base import utcnow
from pumpguard.models.event_log import EventType
from pumpguard.models.notifications import SensorOverrideUpdate, SystemDataRefresh
from pumpguard.models.sensor import OverrideRecord
from pumpguard.state.cache import ExpiringCache

_logger = logging.getLogger(__name__)


class OverrideRegistry:
    """At most one :class:`OverrideRecord` per device, self-expiring."""

    def __init__(
        self,
        cache: ExpiringCache,
        emitter: Emitter,
        *,
        ttl: float = 24 * 3600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._cache = cache
        self._emitter = emitter
        self._ttl = ttl
        self._clock = clock

    async def get(self, device_id: str) -> OverrideRecord | None:
        raw = await self._cache.get(key_for(SENSOR_OVERRIDE_KEY, device_id))
        if raw is None:
            return None
        try:
            return OverrideRecord.model_validate(raw)
        except ValidationError:
            _logger.warning("Ignoring unreadable override for %s", device_id, exc_info=True)
            return None

    async def is_overridden(self, device_id: str) -> bool:
        record = await self.get(device_id)
        return record is not None and record.enabled

    async def set(self, device_id: str, enabled: bool, reason: str | None = None) -> OverrideRecord | None:
        """Enable (upsert) or disable (delete) the override for *device_id*.

        Returns the stored record, or ``None`` when the override was disabled.
        """
        key = key_for(SENSOR_OVERRIDE_KEY, device_id)
        record: OverrideRecord | None = None
        try:
            if enabled:
                record = OverrideRecord(reason=reason or "Manual override", set_at=self._clock())
                await self._cache.set(key, record.to_record(), self._ttl)
            else:
                await self._cache.delete(key)
        except Exception as exc:
            raise StoreError(f"Failed to update sensor override for {device_id}: {exc}", key=key) from exc

        if record is not None:
            _logger.info("Sensor monitoring override enabled for %s: %s", device_id, record.reason)
            notice_reason = record.reason
        else:
            _logger.info("Sensor monitoring override disabled for %s", device_id)
            notice_reason = "Override disabled"

        await self._emitter.notify(
            SensorOverrideUpdate(device_id=device_id, override_enabled=enabled, reason=notice_reason),
            SystemDataRefresh(device_id=device_id),
        )
        await self._emitter.log(
            device_id,
            EventType.SENSOR_OVERRIDE,
            f"Sensor monitoring override {'enabled' if enabled else 'disabled'} - {reason or 'No reason provided'}",
        )
        return record
