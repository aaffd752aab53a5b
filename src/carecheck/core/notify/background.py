"""Background execution hook: periodic wake while the host is idle.

The platform decides the real cadence; callers can only request a minimum
interval.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

WakeCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class BackgroundTaskRegistrar(Protocol):
    def register(self, name: str, min_interval_seconds: float, callback: WakeCallback) -> None: ...


@dataclass
class BackgroundTask:
    name: str
    min_interval_seconds: float
    callback: WakeCallback


class InProcessBackgroundRegistrar:
    """Keeps registrations in memory; the host calls :meth:`wake` on its own cadence."""

    def __init__(self) -> None:
        self.tasks: dict[str, BackgroundTask] = {}

    def register(self, name: str, min_interval_seconds: float, callback: WakeCallback) -> None:
        self.tasks[name] = BackgroundTask(name, min_interval_seconds, callback)
        logger.info("Background task %s registered (min interval %.0fs)", name, min_interval_seconds)

    async def wake(self, name: str) -> bool:
        """Run one registered task; False when ``name`` is not registered."""
        task = self.tasks.get(name)
        if task is None:
            logger.warning("Background wake for unknown task %s", name)
            return False
        await task.callback()
        return True
