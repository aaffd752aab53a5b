"""Pre-approved message pools: fallbacks for failed generation and follow-ups.

Texts here are shown verbatim and are never passed through the guardrails.
"""

from __future__ import annotations

DEFAULT_FALLBACK_TYPE = "wellbeing_check"

FALLBACK_MESSAGES: dict[str, tuple[str, ...]] = {
    "step_nudge": (
        "A short walk might feel nice right about now. Even just a few steps can make a difference!",
        "How about stretching your legs a bit? The fresh air could be refreshing.",
        "When you have a moment, a little movement can help you feel more energized.",
    ),
    "weather_alert": (
        "The weather outside needs some attention today. Please take care!",
        "Just a heads up about the weather - you might want to plan accordingly.",
        "Weather conditions are worth noting today. Stay comfortable!",
    ),
    "medication_reminder": (
        "This is a gentle reminder about your medications. "
        "Taking them regularly helps you stay healthy.",
        "Have you had a chance to take your medications? "
        "They're an important part of your daily routine.",
        "Just checking in about your medications. Let me know if you need any help!",
    ),
    "appointment_reminder": (
        "You have something on your calendar coming up. Would you like me to tell you more?",
        "Just a friendly reminder about your upcoming appointment. "
        "I'm here if you need help preparing.",
        "There's an appointment to remember today. Let me know if you need any details!",
    ),
    "wellbeing_check": (
        "Hi there! I just wanted to check in and see how you're doing today.",
        "Hello! Hope you're having a nice day. How are you feeling?",
        "Just stopping by to say hi and see how things are going for you.",
    ),
    "inactivity_check": (
        "Haven't heard from you in a bit - just checking to make sure everything is okay!",
        "Hi! It's been quiet for a while. Just wanted to make sure you're doing alright.",
        "Checking in to see how you're doing. Everything okay on your end?",
    ),
    "hydration_reminder": (
        "Have you had some water lately? Staying hydrated is so important!",
        "This is your friendly reminder to drink some water. Your body will thank you!",
        "How about a nice glass of water? Keeping hydrated helps you feel your best.",
    ),
    "rest_suggestion": (
        "You've been active! Maybe it's a good time for a little rest.",
        "Taking breaks is important. How about a moment to relax?",
        "A little rest can go a long way. You deserve a break!",
    ),
}

# sentiment -> check-in type (or "default") -> pool
FOLLOW_UP_MESSAGES: dict[str, dict[str, tuple[str, ...]]] = {
    "positive": {
        "step_nudge": ("That's wonderful! Enjoy your walk!", "Great! Every step counts!"),
        "medication_reminder": (
            "Perfect! Taking care of yourself is so important.",
            "Wonderful! Keep up the great routine!",
        ),
        "wellbeing_check": (
            "So glad to hear that! Have a lovely day!",
            "That makes me happy to hear!",
        ),
        "default": ("That's great!", "Wonderful to hear!"),
    },
    "negative": {
        "wellbeing_check": (
            "I'm sorry to hear that. Remember, I'm here if you need to talk.",
            "That's okay. Would you like me to call someone?",
        ),
        "inactivity_check": (
            "Is there anything I can help with? I'm here for you.",
            "Would you like me to reach out to your caregiver?",
        ),
        "default": (
            "That's okay. Let me know if you need anything.",
            "No worries at all. I'm here when you need me.",
        ),
    },
    "neutral": {
        "default": (
            "Sounds good! I'm here if you need me.",
            "Alright! Just let me know if anything comes up.",
        ),
    },
}


def fallback_pool(check_in_type: str) -> tuple[str, ...]:
    return FALLBACK_MESSAGES.get(check_in_type, FALLBACK_MESSAGES[DEFAULT_FALLBACK_TYPE])


def follow_up_pool(check_in_type: str, sentiment: str) -> tuple[str, ...]:
    by_type = FOLLOW_UP_MESSAGES.get(sentiment, FOLLOW_UP_MESSAGES["neutral"])
    return by_type.get(check_in_type, by_type["default"])
