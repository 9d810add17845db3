"""
Analysis alarm — a named, fixed-period timer that drives FocusPipeline.tick.

The callback runs as its own task so a slow tick never delays the next
firing; a firing that finds the previous callback still running is
skipped. Exceptions are logged and the alarm keeps going.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Alarm:

    def __init__(self, name: str, period_s: float, callback: Callable[[], Awaitable[object]]):
        if period_s <= 0:
            raise ValueError(f"Alarm period must be positive, got {period_s}")
        self.name = name
        self.period_s = period_s
        self._callback = callback
        self._loop_task: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None
        self.fired = 0
        self.skipped = 0

    @property
    def armed(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.armed:
            return
        self._loop_task = asyncio.create_task(self._loop())
        logger.info("Alarm %r armed, every %.1fs", self.name, self.period_s)

    async def stop(self) -> None:
        tasks = [t for t in (self._loop_task, self._running) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = self._running = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.period_s)
            self.fire()

    def fire(self) -> Optional[asyncio.Task]:
        """Run the callback once now, unless the previous run is still going."""
        if self._running is not None and not self._running.done():
            self.skipped += 1
            logger.info("Alarm %r: previous run still active, skipping", self.name)
            return None
        self.fired += 1
        self._running = asyncio.create_task(self._run())
        return self._running

    async def _run(self) -> None:
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Alarm %r callback failed", self.name)
