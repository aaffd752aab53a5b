"""Signal connectors — abstraction layer over the user's context signals."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from carecheck.domains.checkin.domain_logic.concern import ConcernAssessment
from carecheck.domains.checkin.domain_logic.signal_models import Signal


@runtime_checkable
class SignalProvider(Protocol):
    """One external source (step counter, weather API, medication store, ...)."""

    @property
    def kind(self) -> str:
        """The signal kind this provider produces."""
        ...

    async def fetch(self) -> Signal | None:
        """Current observation, or None when the source has nothing to report."""
        ...


@runtime_checkable
class SignalSource(Protocol):
    """Everything the orchestrator needs to know about the user's context."""

    async def get_all_signals(self) -> list[Signal]: ...

    def record_activity(self) -> None: ...

    def get_time_of_day_context(self) -> str:
        """'morning' | 'afternoon' | 'evening' | 'night'."""
        ...

    async def check_concerning_patterns(self) -> ConcernAssessment: ...
