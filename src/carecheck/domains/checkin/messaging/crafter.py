"""Message crafter — generated check-in copy with guardrails and fallbacks.

``craft`` never raises: a provider error, a timeout, or a guardrail rejection
all resolve to a uniformly chosen message from the per-type fallback pool.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field

from carecheck.core.llm.provider import LLMProvider
from carecheck.domains.checkin.domain_logic.signal_models import Signal
from carecheck.domains.checkin.messaging.fallbacks import fallback_pool, follow_up_pool
from carecheck.domains.checkin.messaging.guardrails import (
    MESSAGE_GUARDRAILS,
    MessageGuardrails,
    validate_message,
)
from carecheck.domains.checkin.messaging.prompts import (
    PrivacyMode,
    build_system_prompt,
    build_user_prompt,
)

logger = logging.getLogger(__name__)

GENERATED_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.7

GREETINGS = {
    "morning": "Good morning",
    "afternoon": "Good afternoon",
    "evening": "Good evening",
    "night": "Hi there",
}


@dataclass
class UserContext:
    time_of_day: str  # morning | afternoon | evening | night
    name: str = ""


@dataclass
class MessageConstraints:
    max_length: int = MESSAGE_GUARDRAILS.max_length
    tone: str = "warm"


@dataclass
class MessageRequest:
    """Input to :meth:`MessageCrafter.craft`."""

    check_in_type: str
    signals: list[Signal]
    user_context: UserContext
    constraints: MessageConstraints = field(default_factory=MessageConstraints)


@dataclass
class CraftedMessage:
    message: str
    confidence: float
    source: str  # 'generated' | 'fallback'
    reason: str = ""


class MessageCrafter:
    """Produces check-in and follow-up copy.

    Usage::

        crafter = MessageCrafter(provider, timeout_seconds=8.0)
        crafted = await crafter.craft(MessageRequest(
            check_in_type="step_nudge",
            signals=signals,
            user_context=UserContext(time_of_day="afternoon"),
        ))
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        timeout_seconds: float = 8.0,
        privacy_mode: PrivacyMode = "strict",
        guardrails: MessageGuardrails = MESSAGE_GUARDRAILS,
        rng: random.Random | None = None,
    ) -> None:
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.privacy_mode = privacy_mode
        self.guardrails = guardrails
        self._rng = rng or random.Random()

    async def craft(self, request: MessageRequest) -> CraftedMessage:
        """Generate, validate, and fall back on any failure."""
        try:
            text = await asyncio.wait_for(self._generate(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Message generation timed out after %.1fs (%s)",
                self.timeout_seconds,
                request.check_in_type,
            )
            return self.fallback(request.check_in_type, reason="generation timed out")
        except Exception as exc:
            logger.warning("Message generation failed (%s): %s", request.check_in_type, exc)
            return self.fallback(request.check_in_type, reason=f"generation failed: {exc}")

        check = validate_message(text, self.guardrails)
        if not check.passed:
            logger.info("Generated message rejected: %s", check.reason)
            return self.fallback(request.check_in_type, reason=check.reason)

        return CraftedMessage(message=text, confidence=GENERATED_CONFIDENCE, source="generated")

    async def _generate(self, request: MessageRequest) -> str:
        system_message = build_system_prompt(
            request.check_in_type,
            request.user_context.time_of_day,
            tone=request.constraints.tone,
            user_name=request.user_context.name,
            guardrails=self.guardrails,
        )
        user_message = build_user_prompt(
            request.signals,
            privacy_mode=self.privacy_mode,
            guardrails=self.guardrails,
        )

        response = await self.provider.generate(
            system_message=system_message,
            user_message=user_message,
            max_tokens=100,
            temperature=0.7,
        )
        logger.info(
            "Check-in generation: type=%s, model=%s, tokens=%d+%d, latency=%.0fms",
            request.check_in_type,
            response.model,
            response.input_tokens,
            response.output_tokens,
            response.latency_ms,
        )
        return response.content.strip()

    def fallback(self, check_in_type: str, reason: str = "") -> CraftedMessage:
        """Uniform pick from the type's pool; unknown types use the wellbeing pool."""
        message = self._rng.choice(fallback_pool(check_in_type))
        return CraftedMessage(
            message=message,
            confidence=FALLBACK_CONFIDENCE,
            source="fallback",
            reason=reason,
        )

    def follow_up(
        self,
        check_in_type: str,
        sentiment: str,
        user_context: UserContext | None = None,
    ) -> str:
        """Reply to a check-in response. Never calls the provider."""
        message = self._rng.choice(follow_up_pool(check_in_type, sentiment))
        if user_context is not None:
            message = self.personalize(message, user_context)
        return message

    @staticmethod
    def personalize(template: str, user_context: UserContext) -> str:
        """Fill ``{{greeting}}`` from the time of day and ``{{name}}`` when known."""
        message = template
        if "{{greeting}}" in message:
            message = message.replace(
                "{{greeting}}", GREETINGS.get(user_context.time_of_day, "Hi there")
            )
        if user_context.name and "{{name}}" in message:
            message = message.replace("{{name}}", user_context.name)
        return message
