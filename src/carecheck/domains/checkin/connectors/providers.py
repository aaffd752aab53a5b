"""Concrete SignalProvider implementations."""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from carecheck.domains.checkin.domain_logic.signal_models import (
    CalendarEvent,
    CalendarSignal,
    DoseInfo,
    MedicationSignal,
    Signal,
    StepsSignal,
    WeatherSignal,
    steps_trend,
)


class CallableSignalProvider:
    """Adapts an async callable (an existing service method) into a provider."""

    def __init__(self, kind: str, fetcher: Callable[[], Awaitable[Signal | None]]) -> None:
        self._kind = kind
        self._fetcher = fetcher

    @property
    def kind(self) -> str:
        return self._kind

    async def fetch(self) -> Signal | None:
        return await self._fetcher()


class StaticSignalProvider:
    """Always reports the same signal. Useful for demos and tests."""

    def __init__(self, signal: Signal) -> None:
        self._signal = signal

    @property
    def kind(self) -> str:
        return self._signal.kind

    async def fetch(self) -> Signal | None:
        return self._signal


# ---------------------------------------------------------------------------
# Simulated sources for running the server without real integrations
# ---------------------------------------------------------------------------

class MockSignalProvider:
    """Generates plausible, slightly varying readings for one signal kind."""

    def __init__(self, kind: str, rng: random.Random | None = None) -> None:
        if kind not in _GENERATORS:
            raise ValueError(f"No mock generator for signal kind: {kind}")
        self._kind = kind
        self._rng = rng or random.Random()

    @property
    def kind(self) -> str:
        return self._kind

    async def fetch(self) -> Signal | None:
        return _GENERATORS[self._kind](self._rng, datetime.now())


def _mock_steps(rng: random.Random, now: datetime) -> Signal:
    goal = 6000
    # Roughly linear accumulation through waking hours.
    progress = max(0.0, min(1.0, (now.hour - 7) / 14))
    current = int(goal * progress * rng.uniform(0.3, 1.1))
    percentage = round(current / goal * 100)
    return StepsSignal(
        current=current,
        goal=goal,
        percentage=percentage,
        trend=steps_trend(percentage),
        timestamp=now.isoformat(),
    )


def _mock_weather(rng: random.Random, now: datetime) -> Signal:
    temperature = round(rng.uniform(45, 100))
    condition = rng.choice(["clear", "cloudy", "partly_cloudy", "rain"])
    return WeatherSignal(
        temperature=temperature,
        condition=condition,
        feels_like=temperature + rng.choice([-2, 0, 3]),
        humidity=round(rng.uniform(20, 90)),
        uv_index=rng.randint(0, 9),
        timestamp=now.isoformat(),
    )


def _mock_calendar(rng: random.Random, now: datetime) -> Signal:
    events = []
    if rng.random() < 0.5:
        start = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=rng.randint(1, 5))
        events.append(CalendarEvent(
            id="mock-event-1",
            title=rng.choice(["Doctor visit", "Lunch with Maya", "Physical therapy"]),
            start_time=start.isoformat(),
            type="appointment",
        ))
    return CalendarSignal(
        today_event_count=len(events),
        next_event=events[0] if events else None,
        upcoming_events=tuple(events),
        timestamp=now.isoformat(),
    )


def _mock_medication(rng: random.Random, now: datetime) -> Signal:
    return MedicationSignal(
        missed_doses=rng.choice([0, 0, 0, 1, 2]),
        pending_doses=rng.randint(0, 2),
        next_dose=DoseInfo(name="Lisinopril", time="6:00 PM"),
        adherence_rate=round(rng.uniform(60, 100)),
        timestamp=now.isoformat(),
    )


_GENERATORS: dict[str, Callable[[random.Random, datetime], Signal]] = {
    "steps": _mock_steps,
    "weather": _mock_weather,
    "calendar": _mock_calendar,
    "medication": _mock_medication,
}


def mock_signal_providers(seed: int | None = None) -> list[MockSignalProvider]:
    """One simulated provider per externally sourced signal kind."""
    rng = random.Random(seed)
    return [MockSignalProvider(kind, rng) for kind in _GENERATORS]
