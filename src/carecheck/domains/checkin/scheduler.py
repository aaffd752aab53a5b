"""Interval timer that feeds ticks to the check-in orchestrator."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class TriggerSource(str, enum.Enum):
    """Where a tick came from. All sources funnel into the same check."""

    INTERVAL = "interval"
    FOREGROUND = "foreground"
    BACKGROUND = "background"
    MANUAL = "manual"
    START = "start"


class PeriodicTicker:
    """Runs ``callback`` every ``interval_seconds`` on the current event loop.

    The first tick fires one interval after :meth:`start`. A callback that
    raises is logged and the ticker keeps running.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "periodic-ticker",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self._name)
        logger.debug("%s started (every %.0fs)", self._name, self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("%s stopped", self._name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self._callback()
            except Exception:
                logger.exception("%s tick failed", self._name)
