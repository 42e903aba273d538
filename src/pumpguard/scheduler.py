"""Fixed-interval background tasks.

Each :class:`PeriodicTask` owns one asyncio loop that fires its job every
``interval`` seconds. A tick is skipped when the previous run of the same
task is still in flight, so a slow store can never stack up sweeps.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

_logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run an async job on a fixed interval with a non-overlap guard."""

    def __init__(
        self,
        name: str,
        interval: float,
        job: Callable[[], Awaitable[Any]],
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._job = job
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[bool] | None = None
        self._busy = False
        self.runs = 0
        self.failures = 0
        self.skipped = 0

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def busy(self) -> bool:
        """Whether a run of the job is currently in flight."""
        return self._busy

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._loop(), name=f"pumpguard:{self.name}")
        _logger.info("Started periodic task %s (every %.0fs)", self.name, self.interval)

    async def stop(self) -> None:
        """Cancel the loop and any in-flight run."""
        for task in (self._loop_task, self._inflight):
            if task is None:
                continue
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if self._loop_task is not None:
            _logger.info("Stopped periodic task %s", self.name)
        self._loop_task = None
        self._inflight = None

    async def run_once(self) -> bool:
        """Run the job now unless a run is already in flight.

        Returns ``True`` when the job ran. Exceptions from the job are
        logged and swallowed so one failing tick never kills the loop.
        ``runs`` counts completed runs and ``failures`` counts raised ones.
        """
        if self._busy:
            self.skipped += 1
            _logger.debug("Skipping %s: previous run still in flight", self.name)
            return False
        self._busy = True
        try:
            await self._job()
        except Exception:
            self.failures += 1
            _logger.exception("Periodic task %s failed", self.name)
        else:
            self.runs += 1
        finally:
            self._busy = False
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self._inflight is not None and not self._inflight.done():
                self.skipped += 1
                _logger.debug("Skipping %s tick: previous run still in flight", self.name)
                continue
            self._inflight = asyncio.create_task(self.run_once())
