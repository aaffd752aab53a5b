"""Rule catalog — ordered, in-memory index of check-in rules."""

from __future__ import annotations

import logging

from carecheck.domains.checkin.models import Preferences, Rule

logger = logging.getLogger(__name__)


class RuleCatalog:
    """Holds rules in evaluation order. Only ``enabled`` changes at runtime."""

    def __init__(self, rules: list[Rule] | None = None) -> None:
        self._rules: dict[str, Rule] = {}
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: Rule) -> None:
        if rule.id in self._rules:
            raise ValueError(f"Duplicate rule id registered: {rule.id!r}")
        self._rules[rule.id] = rule

    def get(self, rule_id: str) -> Rule | None:
        return self._rules.get(rule_id)

    def all(self) -> list[Rule]:
        """All rules, in registration (evaluation) order."""
        return list(self._rules.values())

    def enabled(self) -> list[Rule]:
        return [r for r in self._rules.values() if r.enabled]

    def for_preferences(self, preferences: Preferences) -> list[Rule]:
        """Enabled rules whose category the user has switched on."""
        return [r for r in self.enabled() if preferences.category_enabled(r.category)]

    def set_enabled(self, rule_id: str, enabled: bool) -> bool:
        """Toggle a rule. Returns False if ``rule_id`` is unknown."""
        rule = self._rules.get(rule_id)
        if rule is None:
            return False
        rule.enabled = enabled
        logger.info("Rule %s %s", rule_id, "enabled" if enabled else "disabled")
        return True

    def __len__(self) -> int:
        return len(self._rules)
