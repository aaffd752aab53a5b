"""Rule evaluator — decides which check-in rules fire for the current signals.

Pure with respect to engine state except for one documented side effect: every
rule that fires is recorded in the ``RuleTriggerHistory`` passed in, so the
caller must persist the history right after evaluating.
"""

from __future__ import annotations

import logging
import operator
import re
from datetime import datetime, timedelta
from typing import Any, Iterable

from carecheck.domains.checkin.domain_logic.signal_models import Signal, find_signal
from carecheck.domains.checkin.models import (
    CheckInDraft,
    Rule,
    RuleCondition,
    RuleTriggerHistory,
    check_in_title,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

_NUMERIC_OPERATORS = {
    "lt": operator.lt,
    "gt": operator.gt,
    "lte": operator.le,
    "gte": operator.ge,
}


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _resolve_actual(condition: RuleCondition, signal: Signal) -> Any:
    """Pick the signal field a condition compares against."""
    if condition.field:
        return signal.field_value(condition.field)
    if isinstance(condition.value, str) and condition.operator in ("eq", "contains"):
        text = signal.text_value()
        if text is not None:
            return text
    return signal.primary_value()


def condition_holds(condition: RuleCondition, signals: list[Signal]) -> bool:
    """Evaluate one condition. A missing signal or field fails closed."""
    signal = find_signal(signals, condition.signal_kind)
    if signal is None:
        return False

    actual = _resolve_actual(condition, signal)
    if actual is None:
        return False

    op = condition.operator
    if op in _NUMERIC_OPERATORS:
        if not (_is_number(actual) and _is_number(condition.value)):
            return False
        return _NUMERIC_OPERATORS[op](actual, condition.value)
    if op == "eq":
        return actual == condition.value
    if op == "between":
        low, high = condition.value, condition.secondary_value
        if not (_is_number(actual) and _is_number(low) and _is_number(high)):
            return False
        return low <= actual <= high
    if op == "contains":
        return str(condition.value) in str(actual)

    logger.warning("Unknown condition operator %r on %s", op, condition.signal_kind)
    return False


def conditions_hold(conditions: list[RuleCondition], signals: list[Signal]) -> bool:
    """All conditions must hold; an empty list means the rule is time-gated only."""
    return all(condition_holds(c, signals) for c in conditions)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _format_field(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_template(template: str, signals: list[Signal]) -> str:
    """Replace ``{{field}}`` tokens with signal fields; unknown tokens stay literal."""
    fields: dict[str, Any] = {}
    for signal in signals:
        for name, value in signal.template_fields().items():
            fields.setdefault(name, value)

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in fields:
            return match.group(0)
        return _format_field(fields[name])

    return PLACEHOLDER_PATTERN.sub(_substitute, template)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _skip_reason(
    rule: Rule,
    history: RuleTriggerHistory,
    now: datetime,
) -> str | None:
    if rule.time_window and not rule.time_window.contains(now.hour):
        return "outside time window"

    last = history.last_fired_at(rule.id)
    if last is not None and now - last < timedelta(minutes=rule.cooldown_minutes):
        return "cooling down"

    if history.count_on(rule.id, now.date()) >= rule.max_per_day:
        return "daily limit reached"

    return None


def evaluate_rules(
    signals: list[Signal],
    rules: Iterable[Rule],
    history: RuleTriggerHistory,
    daily_count: int,
    global_cap: int,
    now: datetime,
) -> list[CheckInDraft]:
    """Return drafts for every rule that fires now, in catalog order.

    Args:
        signals: Signals collected this tick.
        rules: Rules in evaluation order; disabled rules are skipped.
        history: Trigger history; firings are recorded into it.
        daily_count: Check-ins already created today.
        global_cap: Maximum check-ins per day.
        now: Evaluation time (local wall clock).
    """
    remaining = global_cap - daily_count
    if remaining <= 0:
        logger.debug("Daily cap reached (%d/%d); skipping evaluation", daily_count, global_cap)
        return []

    drafts: list[CheckInDraft] = []
    for rule in rules:
        if len(drafts) >= remaining:
            logger.debug("Daily cap exhausted; %s and later rules not evaluated", rule.id)
            break
        if not rule.enabled:
            continue

        reason = _skip_reason(rule, history, now)
        if reason:
            logger.debug("Rule %s skipped: %s", rule.id, reason)
            continue

        if not conditions_hold(rule.conditions, signals):
            continue

        drafts.append(CheckInDraft(
            rule_id=rule.id,
            type=rule.type,
            priority=rule.priority,
            title=check_in_title(rule.type),
            message=render_template(rule.message_template, signals),
            trigger_signals=list(dict.fromkeys(c.signal_kind for c in rule.conditions)),
            actions=list(rule.actions),
        ))
        history.record(rule.id, now)
        logger.info("Rule %s fired (%s)", rule.id, rule.type)

    return drafts
