"""Concerning-pattern detection across the current signal set.

Scores are additive: extended inactivity and repeated missed doses weigh the
most. A score of 2 flags the pattern; 4 or more suggests contacting a
caregiver.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from carecheck.domains.checkin.domain_logic.signal_models import (
    InactivitySignal,
    MedicationSignal,
    Signal,
    StepsSignal,
    inactivity_concern_level,
)

CONCERN_THRESHOLD = 2
CAREGIVER_THRESHOLD = 4

# Step shortfalls only count once the day is well under way.
LOW_STEPS_FROM_HOUR = 14
LOW_STEPS_PERCENTAGE = 20
LOW_ADHERENCE_RATE = 50


@dataclass
class ConcernAssessment:
    is_concerning: bool
    reasons: list[str] = field(default_factory=list)
    suggest_caregiver_call: bool = False
    score: int = 0


def assess_concerning_patterns(signals: list[Signal], hour: int) -> ConcernAssessment:
    """Score ``signals`` for patterns worth an out-of-band check-in."""
    reasons: list[str] = []
    score = 0

    for signal in signals:
        if isinstance(signal, InactivitySignal):
            level = signal.concern_level or inactivity_concern_level(signal.minutes_since_activity)
            if level == "high":
                reasons.append("Extended period of inactivity")
                score += 3
            elif level == "moderate":
                reasons.append("Long period without activity")
                score += 1

        elif isinstance(signal, MedicationSignal):
            if signal.missed_doses >= 2:
                reasons.append("Multiple missed medication doses")
                score += 2
            if signal.adherence_rate < LOW_ADHERENCE_RATE:
                reasons.append("Low medication adherence")
                score += 1

        elif isinstance(signal, StepsSignal):
            if hour >= LOW_STEPS_FROM_HOUR and signal.percentage < LOW_STEPS_PERCENTAGE:
                reasons.append("Very low activity today")
                score += 1

    return ConcernAssessment(
        is_concerning=score >= CONCERN_THRESHOLD,
        reasons=reasons,
        suggest_caregiver_call=score >= CAREGIVER_THRESHOLD,
        score=score,
    )
