"""Content guardrails for generated check-in messages.

A generated message is accepted only if every check passes; the first failing
check is reported as the rejection reason. Topics and clinical terms match
as case-insensitive substrings, so inflected and embedded forms are caught too.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageGuardrails:
    """Limits applied to every generated message."""

    max_length: int = 150
    min_length: int = 20
    # Hard rejection happens only past max_length * overflow_factor.
    overflow_factor: float = 1.5
    forbidden_topics: tuple[str, ...] = (
        "death",
        "dying",
        "end of life",
        "terminal",
        "will",
        "funeral",
        "politics",
        "religion",
        "money",
        "finances",
        "debt",
    )
    avoid_patterns: tuple[str, ...] = (
        r"you should",
        r"you must",
        r"you need to",
        r"don't forget",
        r"remember to",
    )
    clinical_terms: tuple[str, ...] = (
        "patient",
        "condition",
        "symptoms",
        "diagnosis",
        "treatment",
    )
    tones: tuple[str, ...] = ("warm", "supportive", "encouraging", "gentle", "caring")


MESSAGE_GUARDRAILS = MessageGuardrails()


@dataclass
class GuardrailCheck:
    """Result of validating a message against the guardrails."""

    passed: bool
    reason: str = ""


def validate_message(
    message: str,
    guardrails: MessageGuardrails = MESSAGE_GUARDRAILS,
) -> GuardrailCheck:
    """Check ``message`` against length, topic, phrasing and vocabulary limits."""
    if len(message) < guardrails.min_length:
        return GuardrailCheck(passed=False, reason="Message too short")
    if len(message) > guardrails.max_length * guardrails.overflow_factor:
        return GuardrailCheck(passed=False, reason="Message too long")

    lowered = message.lower()
    for topic in guardrails.forbidden_topics:
        if topic in lowered:
            return GuardrailCheck(passed=False, reason=f"Contains forbidden topic: {topic}")

    for pattern in guardrails.avoid_patterns:
        if re.search(pattern, message, re.IGNORECASE):
            return GuardrailCheck(passed=False, reason=f"Contains discouraged pattern: {pattern}")

    for term in guardrails.clinical_terms:
        if term in lowered:
            return GuardrailCheck(passed=False, reason=f"Too clinical: {term}")

    return GuardrailCheck(passed=True)
