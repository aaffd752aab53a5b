"""MCP tools for driving the check-in engine.

Every tool initializes the orchestrator on first use, so the engine loads its
persisted state on the server's own event loop.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from carecheck.domains.checkin.models import PreferencesError
from carecheck.domains.checkin.scheduler import TriggerSource

if TYPE_CHECKING:
    from carecheck.domains.checkin.orchestrator import CheckInOrchestrator

logger = logging.getLogger(__name__)


def register_checkin_tools(
    mcp: FastMCP,
    orchestrator: CheckInOrchestrator,
) -> None:
    """Register check-in engine tools on the MCP server."""

    @mcp.tool
    async def run_check(ctx: Context, trigger: str = "manual") -> str:
        """Run one check-in evaluation now and return any check-ins it created.

        Args:
            trigger: Why the check runs: 'manual', 'foreground' or 'background'.
                'foreground' also counts as user activity.
        """
        await orchestrator.initialize()
        if trigger == "foreground":
            created = await orchestrator.handle_foreground()
        elif trigger == "background":
            created = await orchestrator.handle_background_wake()
        elif trigger == "manual":
            created = await orchestrator.run_check(TriggerSource.MANUAL)
        else:
            return json.dumps({"status": "error", "error": f"Unknown trigger: {trigger}"})

        return json.dumps({
            "status": "ok",
            "trigger": trigger,
            "created": [c.to_dict() for c in created],
        }, indent=2)

    @mcp.tool
    async def get_pending_check_ins(ctx: Context) -> str:
        """List check-ins that are neither dismissed nor expired."""
        await orchestrator.initialize()
        pending = orchestrator.get_pending_check_ins()
        return json.dumps({
            "status": "ok",
            "count": len(pending),
            "check_ins": [c.to_dict() for c in pending],
        }, indent=2)

    @mcp.tool
    async def respond_to_check_in(ctx: Context, check_in_id: str, action_id: str) -> str:
        """Answer a pending check-in with one of its actions.

        Args:
            check_in_id: ID of the check-in being answered.
            action_id: ID of the chosen action (e.g. 'yes', 'fine', 'call').
        """
        await orchestrator.initialize()
        result = await orchestrator.respond_to_check_in(check_in_id, action_id)
        return json.dumps(result.to_dict())

    @mcp.tool
    async def dismiss_check_in(ctx: Context, check_in_id: str) -> str:
        """Dismiss a check-in without answering it."""
        await orchestrator.initialize()
        success = await orchestrator.dismiss_check_in(check_in_id)
        return json.dumps({"success": success})

    @mcp.tool
    async def snooze_check_in(ctx: Context, check_in_id: str, minutes: int = 30) -> str:
        """Snooze a check-in; a reminder is sent after ``minutes``.

        Args:
            check_in_id: ID of the check-in to snooze.
            minutes: Minutes until the reminder (default: 30).
        """
        await orchestrator.initialize()
        success = await orchestrator.snooze_check_in(check_in_id, minutes)
        return json.dumps({"success": success, "minutes": minutes})

    @mcp.tool
    async def get_preferences(ctx: Context) -> str:
        """Show the current check-in preferences."""
        await orchestrator.initialize()
        return json.dumps(orchestrator.get_preferences().to_dict(), indent=2)

    @mcp.tool
    async def update_preferences(ctx: Context, updates: dict[str, Any]) -> str:
        """Change check-in preferences. Nested ``quiet_hours`` and ``categories`` merge.

        Args:
            updates: Partial preferences, e.g. {"max_nudges_per_day": 2,
                "quiet_hours": {"start_hour": 21}}.
        """
        await orchestrator.initialize()
        try:
            preferences = await orchestrator.update_preferences(updates)
        except PreferencesError as exc:
            return json.dumps({"status": "error", "error": str(exc)})
        return json.dumps({"status": "ok", "preferences": preferences.to_dict()}, indent=2)

    @mcp.tool
    async def get_engine_state(ctx: Context) -> str:
        """Show engine status: running flag, last check, today's count, recent signals."""
        await orchestrator.initialize()
        state = orchestrator.get_state().to_dict()
        state["daily_cap"] = orchestrator.daily_cap
        return json.dumps(state, indent=2)

    @mcp.tool
    async def list_rules(ctx: Context) -> str:
        """List the check-in rules in evaluation order."""
        await orchestrator.initialize()
        return json.dumps({
            "count": len(orchestrator.catalog),
            "rules": [r.to_dict() for r in orchestrator.catalog.all()],
        }, indent=2)

    @mcp.tool
    async def set_rule_enabled(ctx: Context, rule_id: str, enabled: bool) -> str:
        """Enable or disable one check-in rule.

        Args:
            rule_id: ID of the rule (see list_rules).
            enabled: True to enable, False to disable.
        """
        await orchestrator.initialize()
        success = orchestrator.set_rule_enabled(rule_id, enabled)
        if not success:
            return json.dumps({"success": False, "error": f"Unknown rule: {rule_id}"})
        logger.info("Rule %s %s via MCP", rule_id, "enabled" if enabled else "disabled")
        return json.dumps({"success": True, "rule_id": rule_id, "enabled": enabled})
