"""Signal collector: fans out to providers and derives inactivity locally.

Providers are queried concurrently. A provider that raises or returns None
simply leaves its kind out of the result; rules needing that kind then fail
closed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from carecheck.domains.checkin.connectors import SignalProvider
from carecheck.domains.checkin.domain_logic.concern import (
    ConcernAssessment,
    assess_concerning_patterns,
)
from carecheck.domains.checkin.domain_logic.signal_models import (
    InactivitySignal,
    Signal,
    inactivity_concern_level,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(minutes=5)


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


class SignalCollector:
    """``SignalSource`` built from a list of ``SignalProvider`` objects.

    Usage::

        collector = SignalCollector([steps_provider, weather_provider])
        signals = await collector.get_all_signals()
    """

    def __init__(
        self,
        providers: list[SignalProvider],
        *,
        clock: Callable[[], datetime] = datetime.now,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
    ) -> None:
        self._providers = providers
        self._clock = clock
        self._cache_ttl = cache_ttl
        self._cache: dict[str, tuple[datetime, Signal]] = {}
        self._last_activity = clock()

    def record_activity(self) -> None:
        """Mark a user interaction; resets the inactivity signal."""
        self._last_activity = self._clock()

    def inactivity_signal(self) -> InactivitySignal:
        now = self._clock()
        minutes = max(int((now - self._last_activity).total_seconds() // 60), 0)
        return InactivitySignal(
            minutes_since_activity=minutes,
            last_activity_type="app_interaction",
            concern_level=inactivity_concern_level(minutes),
            timestamp=now.isoformat(),
        )

    async def _fetch(self, provider: SignalProvider) -> Signal | None:
        try:
            signal = await provider.fetch()
        except Exception:
            logger.exception("Signal provider for %s failed", provider.kind)
            return None
        if signal is not None:
            self._cache[signal.kind] = (self._clock(), signal)
        return signal

    async def get_all_signals(self) -> list[Signal]:
        """Fetch every provider concurrently, plus the derived inactivity signal."""
        results = await asyncio.gather(*(self._fetch(p) for p in self._providers))
        signals = [s for s in results if s is not None]
        if not any(s.kind == "inactivity" for s in signals):
            signals.append(self.inactivity_signal())
        logger.debug("Collected signals: %s", [s.kind for s in signals])
        return signals

    async def get_signal(self, kind: str) -> Signal | None:
        """One signal kind, served from cache when younger than the TTL."""
        if kind == "inactivity":
            return self.inactivity_signal()

        cached = self._cache.get(kind)
        if cached and self._clock() - cached[0] < self._cache_ttl:
            return cached[1]

        for provider in self._providers:
            if provider.kind == kind:
                return await self._fetch(provider)
        return None

    def get_time_of_day_context(self) -> str:
        return time_of_day(self._clock().hour)

    async def check_concerning_patterns(self) -> ConcernAssessment:
        signals = await self.get_all_signals()
        return assess_concerning_patterns(signals, self._clock().hour)
