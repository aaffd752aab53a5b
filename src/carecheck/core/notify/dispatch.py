"""Notification dispatch — the abstract "send notification" capability.

Platform delivery (push, SMS, in-app banners) lives outside the engine. The
orchestrator only needs to send now, schedule a reminder, or cancel all
scheduled reminders.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Abstract notification capability consumed by the orchestrator."""

    async def send_now(self, title: str, body: str, data: dict[str, Any]) -> None: ...

    async def schedule_after(
        self, seconds: float, title: str, body: str, data: dict[str, Any]
    ) -> None: ...

    async def cancel_all(self) -> None: ...


@dataclass
class Notification:
    """A delivered notification, as kept in the outbox."""

    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    delivered_at: str = ""


class OutboxNotificationDispatcher:
    """In-process dispatcher that logs notifications into a bounded outbox.

    Used by the MCP server, where clients poll the outbox instead of receiving
    platform pushes. Scheduled reminders are armed on the running event loop.
    """

    def __init__(self, max_entries: int = 100) -> None:
        self.outbox: deque[Notification] = deque(maxlen=max_entries)
        self._scheduled: list[asyncio.TimerHandle] = []

    def _deliver(self, title: str, body: str, data: dict[str, Any]) -> None:
        self.outbox.append(Notification(
            title=title,
            body=body,
            data=dict(data),
            delivered_at=datetime.now(timezone.utc).isoformat(),
        ))
        logger.info("Notification delivered: %s (%s)", title, data.get("check_in_id", "-"))

    async def send_now(self, title: str, body: str, data: dict[str, Any]) -> None:
        self._deliver(title, body, data)

    async def schedule_after(
        self, seconds: float, title: str, body: str, data: dict[str, Any]
    ) -> None:
        loop = asyncio.get_running_loop()
        handle = loop.call_later(max(seconds, 0.0), self._deliver, title, body, data)
        self._scheduled = [h for h in self._scheduled if not h.cancelled()]
        self._scheduled.append(handle)
        logger.debug("Notification scheduled in %.0fs: %s", seconds, title)

    async def cancel_all(self) -> None:
        for handle in self._scheduled:
            handle.cancel()
        logger.info("Cancelled %d scheduled notifications", len(self._scheduled))
        self._scheduled.clear()

    def recent(self, limit: int = 20) -> list[Notification]:
        """Most recent deliveries, newest first."""
        return list(reversed(self.outbox))[:limit]
