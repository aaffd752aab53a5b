"""MCP tools for viewing the check-in audit trail."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from carecheck.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 7,
        action: str = "",
    ) -> str:
        """View recent check-in events: created, answered, dismissed, escalated.

        Args:
            days: Number of days to look back (default: 7).
            action: Only show this action (e.g. 'proactive_checkin_response').
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        total_events = audit_logger.count_events(action=action or None, since=since)
        caregiver_requests = audit_logger.count_events(
            action="caregiver_alert_requested", since=since
        )
        recent_events = audit_logger.get_events(action=action or None, since=since, limit=20)

        display_events = [
            {
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "category": event.get("category"),
                "description": event.get("description"),
            }
            for event in recent_events
        ]

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": total_events,
            "caregiver_requests": caregiver_requests,
            "recent_events": display_events,
        }, indent=2)
