"""Prompt construction for check-in message generation.

The system prompt carries the tone and content rules; the user prompt
summarizes the triggering signals in plain sentences. In ``strict`` privacy
mode medication names and appointment titles never reach the provider.
"""

from __future__ import annotations

from typing import Literal

from carecheck.domains.checkin.domain_logic.signal_models import (
    CalendarSignal,
    InactivitySignal,
    MedicationSignal,
    Signal,
    StepsSignal,
    WeatherSignal,
)
from carecheck.domains.checkin.messaging.guardrails import MESSAGE_GUARDRAILS, MessageGuardrails
from carecheck.domains.checkin.models import CHECK_IN_TYPE_INFO

PrivacyMode = Literal["strict", "standard"]

NO_SIGNALS_LINE = "No specific signals"


def build_system_prompt(
    check_in_type: str,
    time_of_day: str,
    *,
    tone: str = "warm",
    user_name: str = "",
    guardrails: MessageGuardrails = MESSAGE_GUARDRAILS,
) -> str:
    info = CHECK_IN_TYPE_INFO.get(check_in_type)
    display_name = info.display_name.lower() if info else "check-in"
    icon = f" ({info.icon})" if info else ""

    lines = [
        "You are a warm and caring assistant for older adults. "
        "You're generating a brief check-in message.",
        "",
        "STRICT GUIDELINES:",
        f"- Keep messages between {guardrails.min_length} and {guardrails.max_length} characters",
        f"- Use a {tone}, supportive tone",
        "- NEVER be condescending or talk down to the user",
        "- NEVER mention death, dying, illness severity, finances, politics, or religion",
        '- NEVER use phrases like "you should", "you must", "don\'t forget" '
        "- instead use gentle suggestions",
        "- Address the user warmly but not patronizingly",
        "- Be conversational, not clinical",
        "- Focus on the positive action, not the problem",
        "- One clear message only - no multiple paragraphs",
        "",
        f"The message is a {display_name}{icon}.",
        f"Time of day: {time_of_day}.",
    ]
    if user_name:
        lines.append(f"User's name: {user_name}")
    return "\n".join(lines)


def summarize_signals(signals: list[Signal], privacy_mode: PrivacyMode = "strict") -> str:
    """One ``- ...`` line per relevant signal fact."""
    lines: list[str] = []
    for signal in signals:
        if isinstance(signal, StepsSignal):
            lines.append(
                f"- Steps: {signal.current} of {signal.goal} goal ({signal.percentage:g}%)"
            )
        elif isinstance(signal, WeatherSignal):
            lines.append(f"- Weather: {signal.temperature:g}°F, {signal.condition}")
        elif isinstance(signal, MedicationSignal):
            if signal.next_dose:
                if privacy_mode == "standard":
                    lines.append(
                        f"- Next medication: {signal.next_dose.name} at {signal.next_dose.time}"
                    )
                else:
                    lines.append(f"- Next medication due at {signal.next_dose.time}")
            if signal.missed_doses > 0:
                lines.append(f"- Missed doses today: {signal.missed_doses}")
        elif isinstance(signal, CalendarSignal):
            if signal.next_event:
                if privacy_mode == "standard":
                    lines.append(f"- Next event: {signal.next_event.title}")
                else:
                    lines.append(f"- Events on the calendar today: {signal.today_event_count}")
        elif isinstance(signal, InactivitySignal):
            if signal.minutes_since_activity >= 60:
                hours = signal.minutes_since_activity // 60
                lines.append(f"- No activity for about {hours} hour{'s' if hours != 1 else ''}")

    return "\n".join(lines) or NO_SIGNALS_LINE


def build_user_prompt(
    signals: list[Signal],
    *,
    privacy_mode: PrivacyMode = "strict",
    guardrails: MessageGuardrails = MESSAGE_GUARDRAILS,
) -> str:
    return (
        "Generate a brief, caring check-in message based on these signals:\n"
        f"{summarize_signals(signals, privacy_mode)}\n"
        "\n"
        f"Remember: {guardrails.max_length} characters max. Be warm but not patronizing."
    )
