"""Data models for proactive check-ins: rules, check-ins, preferences, state."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Literal

from carecheck.domains.checkin.domain_logic.signal_models import Signal, signal_from_dict

Priority = Literal["low", "medium", "high", "urgent"]
ActionType = Literal["positive", "negative", "neutral", "action", "call_caregiver"]
Operator = Literal["lt", "gt", "lte", "gte", "eq", "between", "contains"]
Sentiment = Literal["positive", "negative", "neutral"]

PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "urgent")
ACTION_TYPES: tuple[str, ...] = ("positive", "negative", "neutral", "action", "call_caregiver")
OPERATORS: tuple[str, ...] = ("lt", "gt", "lte", "gte", "eq", "between", "contains")
CATEGORIES: tuple[str, ...] = (
    "steps", "weather", "medication", "appointments", "wellbeing", "hydration",
)


# ---------------------------------------------------------------------------
# Check-in type metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CheckInTypeInfo:
    display_name: str
    icon: str
    category: str          # key into Preferences.categories
    default_priority: str
    title: str             # notification / card title


CHECK_IN_TYPE_INFO: dict[str, CheckInTypeInfo] = {
    "step_nudge": CheckInTypeInfo("Step Reminder", "👟", "steps", "low", "Time to Move!"),
    "weather_alert": CheckInTypeInfo("Weather Alert", "🌤️", "weather", "medium", "Weather Update"),
    "medication_reminder": CheckInTypeInfo(
        "Medication Reminder", "💊", "medication", "high", "Medication Check"
    ),
    "appointment_reminder": CheckInTypeInfo(
        "Appointment Reminder", "📅", "appointments", "high", "Upcoming Appointment"
    ),
    "wellbeing_check": CheckInTypeInfo("Wellbeing Check", "💚", "wellbeing", "medium", "Hi there!"),
    "inactivity_check": CheckInTypeInfo("Activity Check", "🏃", "wellbeing", "medium", "Checking In"),
    "hydration_reminder": CheckInTypeInfo(
        "Hydration Reminder", "💧", "hydration", "low", "Stay Hydrated!"
    ),
    "rest_suggestion": CheckInTypeInfo("Rest Suggestion", "😴", "wellbeing", "low", "Rest Time"),
}

DEFAULT_TITLE = "Check-In"


def check_in_title(check_in_type: str) -> str:
    info = CHECK_IN_TYPE_INFO.get(check_in_type)
    return info.title if info else DEFAULT_TITLE


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CheckInAction:
    """A response option offered on a check-in card."""

    id: str
    label: str
    type: str  # ActionType
    icon: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "type": self.type, "icon": self.icon}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckInAction:
        return cls(
            id=data["id"],
            label=data["label"],
            type=data["type"],
            icon=data.get("icon", ""),
        )

    @property
    def sentiment(self) -> str:
        """Collapse the action type onto positive | negative | neutral."""
        if self.type in ("positive", "negative"):
            return self.type
        return "neutral"


@dataclass(frozen=True)
class RuleCondition:
    """One comparison against the signal of ``signal_kind``.

    ``field`` picks a specific template field of the signal; when empty the
    signal's primary numeric value is used, or its text value for a string
    ``eq``/``contains`` comparison.
    """

    signal_kind: str
    operator: str  # Operator
    value: Any
    secondary_value: Any = None
    field: str = ""


@dataclass(frozen=True)
class TimeWindow:
    """Half-open hour window ``[start_hour, end_hour)``."""

    start_hour: int
    end_hour: int

    def contains(self, hour: int) -> bool:
        return self.start_hour <= hour < self.end_hour


@dataclass
class Rule:
    """A declarative check-in rule: conditions, cadence, template, actions."""

    id: str
    name: str
    type: str
    priority: str
    message_template: str
    description: str = ""
    enabled: bool = True
    conditions: list[RuleCondition] = field(default_factory=list)
    cooldown_minutes: int = 60
    max_per_day: int = 1
    time_window: TimeWindow | None = None
    actions: list[CheckInAction] = field(default_factory=list)

    @property
    def category(self) -> str | None:
        info = CHECK_IN_TYPE_INFO.get(self.type)
        return info.category if info else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "priority": self.priority,
            "enabled": self.enabled,
            "cooldown_minutes": self.cooldown_minutes,
            "max_per_day": self.max_per_day,
            "time_window": (
                {"start_hour": self.time_window.start_hour, "end_hour": self.time_window.end_hour}
                if self.time_window
                else None
            ),
            "conditions": [
                {
                    "signal": c.signal_kind,
                    "operator": c.operator,
                    "value": c.value,
                    **({"secondary_value": c.secondary_value} if c.secondary_value is not None else {}),
                    **({"field": c.field} if c.field else {}),
                }
                for c in self.conditions
            ],
            "message_template": self.message_template,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class CheckInDraft:
    """A fired rule, rendered but not yet persisted as a CheckIn."""

    rule_id: str
    type: str
    priority: str
    title: str
    message: str
    trigger_signals: list[str]
    actions: list[CheckInAction]


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CheckInResponse:
    action_id: str
    timestamp: str
    follow_up: str | None = None


@dataclass
class CheckIn:
    """A persisted, user-facing proactive prompt with a response lifecycle."""

    id: str
    type: str
    priority: str
    title: str
    message: str
    created_at: str
    expires_at: str | None = None
    suggestion: str | None = None
    trigger_signals: list[str] = field(default_factory=list)
    actions: list[CheckInAction] = field(default_factory=list)
    dismissed: bool = False
    dismissed_at: str | None = None
    response: CheckInResponse | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and datetime.fromisoformat(self.expires_at) <= now

    def is_pending(self, now: datetime) -> bool:
        return not self.dismissed and not self.is_expired(now)

    def find_action(self, action_id: str) -> CheckInAction | None:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "message": self.message,
            "suggestion": self.suggestion,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "trigger_signals": list(self.trigger_signals),
            "actions": [a.to_dict() for a in self.actions],
            "dismissed": self.dismissed,
            "dismissed_at": self.dismissed_at,
            "response": (
                {
                    "action_id": self.response.action_id,
                    "timestamp": self.response.timestamp,
                    "follow_up": self.response.follow_up,
                }
                if self.response
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckIn:
        response = data.get("response")
        return cls(
            id=data["id"],
            type=data["type"],
            priority=data["priority"],
            title=data["title"],
            message=data["message"],
            created_at=data["created_at"],
            expires_at=data.get("expires_at"),
            suggestion=data.get("suggestion"),
            trigger_signals=list(data.get("trigger_signals", [])),
            actions=[CheckInAction.from_dict(a) for a in data.get("actions", [])],
            dismissed=bool(data.get("dismissed", False)),
            dismissed_at=data.get("dismissed_at"),
            response=CheckInResponse(**response) if response else None,
        )


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

class PreferencesError(ValueError):
    """Raised when a preference update carries an invalid value."""


MIN_NUDGES_PER_DAY = 1
MAX_NUDGES_PER_DAY = 5


@dataclass(frozen=True)
class QuietHours:
    enabled: bool = True
    start_hour: int = 22
    end_hour: int = 7

    def contains(self, hour: int) -> bool:
        """True when ``hour`` falls inside the window; ``start > end`` wraps midnight."""
        if not self.enabled:
            return False
        if self.start_hour > self.end_hour:
            return hour >= self.start_hour or hour < self.end_hour
        return self.start_hour <= hour < self.end_hour


def _default_categories() -> dict[str, bool]:
    return {name: True for name in CATEGORIES}


@dataclass(frozen=True)
class Preferences:
    """User-controlled check-in settings."""

    enabled: bool = True
    max_nudges_per_day: int = 3
    quiet_hours: QuietHours = field(default_factory=QuietHours)
    categories: dict[str, bool] = field(default_factory=_default_categories)
    concerning_pattern_alert: bool = True
    caregiver_alert_threshold: str = "high"  # never | high | moderate | low

    def category_enabled(self, category: str | None) -> bool:
        return category is not None and self.categories.get(category, False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "max_nudges_per_day": self.max_nudges_per_day,
            "quiet_hours": {
                "enabled": self.quiet_hours.enabled,
                "start_hour": self.quiet_hours.start_hour,
                "end_hour": self.quiet_hours.end_hour,
            },
            "categories": dict(self.categories),
            "concerning_pattern_alert": self.concerning_pattern_alert,
            "caregiver_alert_threshold": self.caregiver_alert_threshold,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Preferences:
        return cls().merged(data)

    def merged(self, updates: dict[str, Any]) -> Preferences:
        """Return a copy with ``updates`` applied; nested dicts merge key by key.

        Raises:
            PreferencesError: On unknown keys or out-of-range values.
        """
        current = self.to_dict()
        for key, value in updates.items():
            if key not in current:
                raise PreferencesError(f"Unknown preference: {key!r}")
            if key in ("quiet_hours", "categories"):
                if not isinstance(value, dict):
                    raise PreferencesError(f"{key} must be an object")
                current[key] = {**current[key], **value}
            else:
                current[key] = value

        max_nudges = current["max_nudges_per_day"]
        if not isinstance(max_nudges, int) or not (
            MIN_NUDGES_PER_DAY <= max_nudges <= MAX_NUDGES_PER_DAY
        ):
            raise PreferencesError(
                f"max_nudges_per_day must be between {MIN_NUDGES_PER_DAY} and {MAX_NUDGES_PER_DAY}"
            )

        quiet = current["quiet_hours"]
        for hour_key in ("start_hour", "end_hour"):
            if not isinstance(quiet.get(hour_key), int) or not 0 <= quiet[hour_key] <= 23:
                raise PreferencesError(f"quiet_hours.{hour_key} must be an hour 0-23")

        unknown = set(current["categories"]) - set(CATEGORIES)
        if unknown:
            raise PreferencesError(f"Unknown categories: {sorted(unknown)}")

        if current["caregiver_alert_threshold"] not in ("never", "high", "moderate", "low"):
            raise PreferencesError("caregiver_alert_threshold must be never|high|moderate|low")

        # Flags must be real booleans; bool("false") is True.
        flags = {
            "enabled": current["enabled"],
            "quiet_hours.enabled": quiet["enabled"],
            "concerning_pattern_alert": current["concerning_pattern_alert"],
            **{f"categories.{k}": v for k, v in current["categories"].items()},
        }
        for name, value in flags.items():
            if not isinstance(value, bool):
                raise PreferencesError(f"{name} must be true or false")

        return replace(
            self,
            enabled=current["enabled"],
            max_nudges_per_day=max_nudges,
            quiet_hours=QuietHours(
                enabled=quiet["enabled"],
                start_hour=quiet["start_hour"],
                end_hour=quiet["end_hour"],
            ),
            categories=dict(current["categories"]),
            concerning_pattern_alert=current["concerning_pattern_alert"],
            caregiver_alert_threshold=current["caregiver_alert_threshold"],
        )


# ---------------------------------------------------------------------------
# Rate-limit state
# ---------------------------------------------------------------------------

@dataclass
class DailyCheckInCount:
    """Check-ins created on ``date`` (ISO day); stale dates count as zero."""

    date: str = ""
    count: int = 0

    def count_for(self, day: date) -> int:
        return self.count if self.date == day.isoformat() else 0

    def increment(self, day: date) -> None:
        if self.date != day.isoformat():
            self.date, self.count = day.isoformat(), 0
        self.count += 1

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "count": self.count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DailyCheckInCount:
        return cls(date=str(data.get("date", "")), count=int(data.get("count", 0)))


@dataclass
class RuleTriggerHistory:
    """Per-rule last-fired timestamp plus a count of firings on that day."""

    last_fired: dict[str, str] = field(default_factory=dict)
    fired_on: dict[str, dict[str, Any]] = field(default_factory=dict)

    def last_fired_at(self, rule_id: str) -> datetime | None:
        stamp = self.last_fired.get(rule_id)
        return datetime.fromisoformat(stamp) if stamp else None

    def count_on(self, rule_id: str, day: date) -> int:
        entry = self.fired_on.get(rule_id)
        if not entry or entry.get("date") != day.isoformat():
            return 0
        return int(entry.get("count", 0))

    def record(self, rule_id: str, now: datetime) -> None:
        self.fired_on[rule_id] = {
            "date": now.date().isoformat(),
            "count": self.count_on(rule_id, now.date()) + 1,
        }
        self.last_fired[rule_id] = now.isoformat()

    def clear(self) -> None:
        self.last_fired.clear()
        self.fired_on.clear()

    def to_dict(self) -> dict[str, Any]:
        return {"last_fired": dict(self.last_fired), "fired_on": dict(self.fired_on)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleTriggerHistory:
        if "last_fired" not in data:
            # Flat {rule_id: timestamp} mapping: one firing on the recorded day.
            history = cls(last_fired={k: str(v) for k, v in data.items()})
            for rule_id, stamp in history.last_fired.items():
                history.fired_on[rule_id] = {
                    "date": datetime.fromisoformat(stamp).date().isoformat(),
                    "count": 1,
                }
            return history
        return cls(
            last_fired=dict(data.get("last_fired", {})),
            fired_on=dict(data.get("fired_on", {})),
        )


# ---------------------------------------------------------------------------
# Engine snapshot
# ---------------------------------------------------------------------------

@dataclass
class EngineState:
    """Introspection snapshot; authoritative state lives in the store keys."""

    is_running: bool = False
    last_check_time: str | None = None
    today_check_in_count: int = 0
    recent_signals: list[Signal] = field(default_factory=list)
    last_rule_triggers: dict[str, str] = field(default_factory=dict)
    last_concern_alert: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_check_time": self.last_check_time,
            "today_check_in_count": self.today_check_in_count,
            "recent_signals": [s.to_dict() for s in self.recent_signals],
            "last_rule_triggers": dict(self.last_rule_triggers),
            "last_concern_alert": self.last_concern_alert,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineState:
        return cls(
            is_running=bool(data.get("is_running", False)),
            last_check_time=data.get("last_check_time"),
            today_check_in_count=int(data.get("today_check_in_count", 0)),
            recent_signals=[signal_from_dict(s) for s in data.get("recent_signals", [])],
            last_rule_triggers=dict(data.get("last_rule_triggers", {})),
            last_concern_alert=data.get("last_concern_alert"),
        )
