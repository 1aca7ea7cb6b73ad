"""Global commands recognized in every conversation step."""

from __future__ import annotations

from enum import Enum

from ridebooking.models.conversation import ConversationStep


class Command(str, Enum):
    RESTART = "restart"
    HELP = "help"
    AI_ON = "ai_on"
    AI_OFF = "ai_off"


RESTART_WORDS = {"restart", "start over", "new ride", "new", "ride", "cancel"}
HELP_WORDS = {"help", "?"}
AI_ON_WORDS = {"enable ai", "ai on", "smart mode"}
AI_OFF_WORDS = {"disable ai", "ai off", "step mode", "traditional"}

# Matched as substrings, AI mode only
AI_RESTART_PHRASES = ("another ride", "book another ride", "next ride", "new booking", "fresh ride")

STEP_DESCRIPTIONS = {
    ConversationStep.WAITING_FOR_FROM: "waiting for your pickup location",
    ConversationStep.WAITING_FOR_TO: "waiting for your destination",
    ConversationStep.WAITING_FOR_TIME: "waiting for your pickup time",
    ConversationStep.WAITING_FOR_DRIVER: "waiting for a driver phone number or 'auto'",
    ConversationStep.WAITING_FOR_ALTERNATIVE_DRIVER: "waiting for a different driver",
    ConversationStep.WAITING_FOR_ALTERNATIVE_TIME: "waiting for a different time",
    ConversationStep.COMPLETED: "ride request completed",
    ConversationStep.AI_MANAGED: "smart mode, tell me about your ride in your own words",
}


def detect_command(text: str, ai_mode: bool) -> Command | None:
    clean = (text or "").strip().lower()
    if clean in RESTART_WORDS:
        return Command.RESTART
    if clean in HELP_WORDS:
        return Command.HELP
    if clean in AI_ON_WORDS:
        return Command.AI_ON
    if clean in AI_OFF_WORDS:
        return Command.AI_OFF
    if ai_mode and any(phrase in clean for phrase in AI_RESTART_PHRASES):
        return Command.RESTART
    return None


def help_text(step: ConversationStep, ai_enabled: bool) -> str:
    mode = "smart mode (AI)" if ai_enabled else "step-by-step mode"
    return (
        "*Ride Booking Help*\n\n"
        "Commands:\n"
        "- restart: start a new booking\n"
        "- help: show this message\n"
        "- enable ai: switch to smart mode\n"
        "- disable ai: switch to step-by-step mode\n\n"
        f"Mode: {mode}\n"
        f"Current step: {STEP_DESCRIPTIONS.get(step, step.value)}"
    )
