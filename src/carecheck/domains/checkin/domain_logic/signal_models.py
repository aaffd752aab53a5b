"""Signal models — typed observations about the user's current context.

Signals are produced fresh by the signal source on every tick and are never
mutated. Each kind exposes:

* a primary numeric value, used by numeric rule conditions;
* an optional text value (weather condition), used by string ``eq``/``contains``;
* template fields, used for ``{{placeholder}}`` interpolation.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Literal

SignalKind = Literal["steps", "weather", "calendar", "medication", "inactivity"]

SIGNAL_KINDS: tuple[str, ...] = ("steps", "weather", "calendar", "medication", "inactivity")

# ---------------------------------------------------------------------------
# Derived labels (match the thresholds the signal providers report with)
# ---------------------------------------------------------------------------


def steps_trend(percentage: float) -> str:
    """Label a step-goal percentage: low | normal | good | excellent."""
    if percentage >= 100:
        return "excellent"
    if percentage >= 70:
        return "good"
    if percentage >= 40:
        return "normal"
    return "low"


def inactivity_concern_level(minutes: int) -> str:
    """Label minutes since last activity: normal | mild | moderate | high."""
    if minutes < 60:
        return "normal"
    if minutes < 120:
        return "mild"
    if minutes < 240:
        return "moderate"
    return "high"


def _now_iso() -> str:
    return datetime.now().isoformat()


# ---------------------------------------------------------------------------
# Signal types
# ---------------------------------------------------------------------------


class Signal:
    """Base behaviour shared by every signal kind."""

    kind: ClassVar[str] = ""
    timestamp: str

    def primary_value(self) -> float | None:
        """The numeric field numeric conditions compare against."""
        return None

    def text_value(self) -> str | None:
        """The string field string conditions compare against, if any."""
        return None

    def template_fields(self) -> dict[str, Any]:
        """Fields available to ``{{placeholder}}`` interpolation."""
        return {}

    def field_value(self, name: str) -> Any:
        return self.template_fields().get(name)

    def to_dict(self) -> dict[str, Any]:
        value = asdict(self)  # type: ignore[call-overload]
        timestamp = value.pop("timestamp")
        return {"kind": self.kind, "timestamp": timestamp, "value": value}


@dataclass(frozen=True)
class StepsSignal(Signal):
    kind: ClassVar[str] = "steps"

    current: int
    goal: int
    percentage: float
    trend: str = ""
    timestamp: str = field(default_factory=_now_iso)

    def primary_value(self) -> float | None:
        return self.current

    def template_fields(self) -> dict[str, Any]:
        return {
            "steps": self.current,
            "current": self.current,
            "goal": self.goal,
            "percentage": self.percentage,
            "trend": self.trend or steps_trend(self.percentage),
        }


@dataclass(frozen=True)
class WeatherSignal(Signal):
    kind: ClassVar[str] = "weather"

    temperature: float
    condition: str
    feels_like: float | None = None
    humidity: float | None = None
    uv_index: float | None = None
    alert: str | None = None
    timestamp: str = field(default_factory=_now_iso)

    def primary_value(self) -> float | None:
        return self.temperature

    def text_value(self) -> str | None:
        return self.condition

    def template_fields(self) -> dict[str, Any]:
        fields = {
            "temperature": self.temperature,
            "condition": self.condition,
            "feels_like": self.feels_like,
            "humidity": self.humidity,
            "uv_index": self.uv_index,
            "alert": self.alert,
        }
        return {k: v for k, v in fields.items() if v is not None}


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start_time: str
    end_time: str | None = None
    location: str | None = None
    is_all_day: bool = False
    type: str = "event"  # appointment | reminder | event | medication


@dataclass(frozen=True)
class CalendarSignal(Signal):
    kind: ClassVar[str] = "calendar"

    today_event_count: int
    next_event: CalendarEvent | None = None
    upcoming_events: tuple[CalendarEvent, ...] = ()
    timestamp: str = field(default_factory=_now_iso)

    def primary_value(self) -> float | None:
        return self.today_event_count

    def template_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"today_event_count": self.today_event_count}
        if self.next_event is not None:
            fields["next_event"] = self.next_event.title
            fields["next_event_time"] = self.next_event.start_time
            if self.next_event.location:
                fields["next_event_location"] = self.next_event.location
        return fields


@dataclass(frozen=True)
class DoseInfo:
    name: str
    time: str


@dataclass(frozen=True)
class MedicationSignal(Signal):
    kind: ClassVar[str] = "medication"

    missed_doses: int
    next_dose: DoseInfo | None = None
    pending_doses: int = 0
    adherence_rate: float = 100.0
    timestamp: str = field(default_factory=_now_iso)

    def primary_value(self) -> float | None:
        return self.missed_doses

    def template_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "missed_doses": self.missed_doses,
            "pending_doses": self.pending_doses,
            "adherence_rate": self.adherence_rate,
        }
        if self.next_dose is not None:
            fields["next_dose"] = self.next_dose.name
            fields["next_dose_time"] = self.next_dose.time
        return fields


@dataclass(frozen=True)
class InactivitySignal(Signal):
    kind: ClassVar[str] = "inactivity"

    minutes_since_activity: int
    last_activity_type: str = "app_interaction"
    concern_level: str = ""
    timestamp: str = field(default_factory=_now_iso)

    def primary_value(self) -> float | None:
        return self.minutes_since_activity

    def template_fields(self) -> dict[str, Any]:
        return {
            "minutes_since_activity": self.minutes_since_activity,
            "inactive_hours": self.minutes_since_activity // 60,
            "concern_level": self.concern_level
            or inactivity_concern_level(self.minutes_since_activity),
        }


_SIGNAL_CLASSES: dict[str, type[Signal]] = {
    cls.kind: cls
    for cls in (StepsSignal, WeatherSignal, CalendarSignal, MedicationSignal, InactivitySignal)
}


# ---------------------------------------------------------------------------
# (De)serialization
# ---------------------------------------------------------------------------


class SignalFormatError(ValueError):
    """Raised when a serialized signal cannot be decoded."""


def _event_from_dict(data: dict[str, Any]) -> CalendarEvent:
    return CalendarEvent(
        id=str(data.get("id", "")),
        title=data["title"],
        start_time=data.get("start_time", ""),
        end_time=data.get("end_time"),
        location=data.get("location"),
        is_all_day=bool(data.get("is_all_day", False)),
        type=data.get("type", "event"),
    )


def signal_from_dict(data: dict[str, Any]) -> Signal:
    """Decode ``{"kind", "timestamp", "value"}`` into the matching signal type.

    Raises:
        SignalFormatError: For an unknown kind or missing required fields.
    """
    kind = data.get("kind") or data.get("type")
    if kind not in _SIGNAL_CLASSES:
        raise SignalFormatError(f"Unknown signal kind: {kind!r}")

    value = dict(data.get("value") or {})
    timestamp = data.get("timestamp") or _now_iso()

    try:
        if kind == "calendar":
            next_event = value.get("next_event")
            return CalendarSignal(
                today_event_count=int(value["today_event_count"]),
                next_event=_event_from_dict(next_event) if next_event else None,
                upcoming_events=tuple(
                    _event_from_dict(e) for e in value.get("upcoming_events", [])
                ),
                timestamp=timestamp,
            )
        if kind == "medication":
            next_dose = value.get("next_dose")
            return MedicationSignal(
                missed_doses=int(value["missed_doses"]),
                next_dose=DoseInfo(**next_dose) if next_dose else None,
                pending_doses=int(value.get("pending_doses", 0)),
                adherence_rate=float(value.get("adherence_rate", 100.0)),
                timestamp=timestamp,
            )
        return _SIGNAL_CLASSES[kind](timestamp=timestamp, **value)
    except (KeyError, TypeError, ValueError) as exc:
        raise SignalFormatError(f"Malformed {kind} signal: {exc}") from exc


def find_signal(signals: list[Signal], kind: str) -> Signal | None:
    """First signal of ``kind``, or None when the kind was not collected."""
    for signal in signals:
        if signal.kind == kind:
            return signal
    return None
