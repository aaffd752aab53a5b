"""Rule loader — reads check-in rule definitions from YAML."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from carecheck.domains.checkin.domain_logic.signal_models import SIGNAL_KINDS
from carecheck.domains.checkin.models import (
    ACTION_TYPES,
    CHECK_IN_TYPE_INFO,
    OPERATORS,
    PRIORITIES,
    CheckInAction,
    Rule,
    RuleCondition,
    TimeWindow,
)
from carecheck.domains.checkin.rules.catalog import RuleCatalog

logger = logging.getLogger(__name__)

DEFAULT_RULES_FILE = Path(__file__).resolve().parent / "default_rules.yaml"

REQUIRED_FIELDS = ["id", "name", "type", "priority", "message_template"]


class RuleLoadError(Exception):
    """Raised when a rule definition is missing fields or has invalid values."""


def load_rule_catalog(path: str | Path | None = None) -> RuleCatalog:
    """Build a catalog from ``path`` (file or directory), or the bundled defaults."""
    catalog = RuleCatalog()
    source = Path(path).expanduser() if path else DEFAULT_RULES_FILE

    if source.is_dir():
        files = [p for p in sorted(source.rglob("*.yaml")) if not p.name.startswith("_")]
    elif source.is_file():
        files = [source]
    else:
        raise RuleLoadError(f"Rule path does not exist: {source}")

    for file_path in files:
        for rule in load_rule_file(file_path):
            catalog.register(rule)
        logger.info("Loaded rules from %s", file_path)

    logger.info("Rule catalog ready: %d rules (%d enabled)", len(catalog), len(catalog.enabled()))
    return catalog


def load_rule_file(path: Path) -> list[Rule]:
    """Parse one YAML document holding a top-level ``rules`` list."""
    with open(path, encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    entries = data.get("rules")
    if not isinstance(entries, list):
        raise RuleLoadError(f"{path}: expected a top-level 'rules' list")

    return [parse_rule(entry, source=str(path)) for entry in entries]


def parse_rule(data: dict[str, Any], source: str = "<memory>") -> Rule:
    """Validate one rule mapping and convert it into a ``Rule``."""
    rule_id = data.get("id", "?")
    where = f"{source}: rule {rule_id!r}"

    for field_name in REQUIRED_FIELDS:
        if not data.get(field_name):
            raise RuleLoadError(f"{where}: missing required field '{field_name}'")

    if data["type"] not in CHECK_IN_TYPE_INFO:
        raise RuleLoadError(f"{where}: unknown check-in type {data['type']!r}")
    if data["priority"] not in PRIORITIES:
        raise RuleLoadError(f"{where}: unknown priority {data['priority']!r}")

    window_data = data.get("time_window")
    time_window = None
    if window_data:
        start, end = window_data.get("start_hour"), window_data.get("end_hour")
        if not (isinstance(start, int) and isinstance(end, int) and 0 <= start < end <= 24):
            raise RuleLoadError(f"{where}: time_window must satisfy 0 <= start_hour < end_hour <= 24")
        time_window = TimeWindow(start_hour=start, end_hour=end)

    conditions = [_parse_condition(c, where) for c in data.get("conditions") or []]
    actions = [_parse_action(a, where) for a in data.get("actions") or []]
    if not actions:
        raise RuleLoadError(f"{where}: at least one action is required")

    cooldown = data.get("cooldown_minutes", 60)
    max_per_day = data.get("max_per_day", 1)
    if not isinstance(cooldown, int) or cooldown < 0:
        raise RuleLoadError(f"{where}: cooldown_minutes must be a non-negative integer")
    if not isinstance(max_per_day, int) or max_per_day < 1:
        raise RuleLoadError(f"{where}: max_per_day must be a positive integer")

    return Rule(
        id=str(data["id"]),
        name=data["name"],
        description=(data.get("description") or "").strip(),
        type=data["type"],
        priority=data["priority"],
        enabled=bool(data.get("enabled", True)),
        conditions=conditions,
        cooldown_minutes=cooldown,
        max_per_day=max_per_day,
        time_window=time_window,
        message_template=data["message_template"],
        actions=actions,
    )


def _parse_condition(data: dict[str, Any], where: str) -> RuleCondition:
    kind = data.get("signal")
    operator = data.get("operator")
    if kind not in SIGNAL_KINDS:
        raise RuleLoadError(f"{where}: unknown condition signal {kind!r}")
    if operator not in OPERATORS:
        raise RuleLoadError(f"{where}: unknown operator {operator!r}")
    if "value" not in data:
        raise RuleLoadError(f"{where}: condition on {kind} has no value")
    if operator == "between" and data.get("secondary_value") is None:
        raise RuleLoadError(f"{where}: 'between' needs a secondary_value")
    return RuleCondition(
        signal_kind=kind,
        operator=operator,
        value=data["value"],
        secondary_value=data.get("secondary_value"),
        field=data.get("field", ""),
    )


def _parse_action(data: dict[str, Any], where: str) -> CheckInAction:
    if not data.get("id") or not data.get("label"):
        raise RuleLoadError(f"{where}: actions need an id and a label")
    if data.get("type") not in ACTION_TYPES:
        raise RuleLoadError(f"{where}: unknown action type {data.get('type')!r}")
    return CheckInAction(
        id=str(data["id"]),
        label=str(data["label"]),
        type=data["type"],
        icon=data.get("icon", ""),
    )
