"""Audit logger — append-only trail of check-in lifecycle events.

Every check-in created, answered, dismissed or escalated to a caregiver is
recorded in the ``audit_log`` table. Writes are fire-and-forget: a failing
write is logged and dropped, never raised into the engine.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from carecheck.core.storage.database import CheckInDatabase

logger = logging.getLogger(__name__)


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str        # 'proactive_checkin' | 'proactive_checkin_response' | ...
    category: str      # 'system' | 'care_circle'
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    Usage::

        audit = AuditLogger(db)
        audit.log(
            "proactive_checkin",
            "system",
            "Proactive check-in: step_nudge",
            {"check_in_id": "checkin_...", "type": "step_nudge"},
        )
    """

    def __init__(self, database: CheckInDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an event and return its UUID, or ``""`` if the write failed."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        try:
            metadata_json = (
                json.dumps(event.metadata, separators=(",", ":"), default=str)
                if event.metadata
                else None
            )
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, category, description, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.category,
                    event.description or None,
                    metadata_json,
                ),
            )
            conn.commit()
        except Exception:
            logger.exception("Failed to write audit event %s; event lost", event.action)
            return ""

        return event_id

    def log(
        self,
        action: str,
        category: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Convenience wrapper around :meth:`log_event`."""
        return self.log_event(AuditEvent(
            action=action,
            category=category,
            description=description,
            metadata=metadata or {},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        category: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events, newest first.

        Args:
            action: Filter by action name.
            category: Filter by category.
            since: ISO 8601 timestamp lower bound.
            limit: Maximum events to return.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if category:
            conditions.append("category = ?")
            params.append(category)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        events = []
        for row in rows:
            event = dict(row)
            raw = event.pop("metadata_json", None)
            event["metadata"] = json.loads(raw) if raw else {}
            events.append(event)
        return events

    def count_events(self, *, action: str | None = None, since: str | None = None) -> int:
        """Count audit events, optionally filtered by action and lower bound."""
        conditions: list[str] = []
        params: list[Any] = []
        if action:
            conditions.append("action = ?")
            params.append(action)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        row = self._db.connection.execute(
            f"SELECT COUNT(*) FROM audit_log{where}", params
        ).fetchone()
        return row[0]
