"""Reply texts used by the conversation machine outside the workflow prompts."""

from __future__ import annotations

from ridebooking.models.conversation import RideSlots
from ridebooking.models.ride import SuggestedTime
from ridebooking.preferences.base import PreferredDriver
from ridebooking.timeutil import format_display

GENERIC_ERROR = (
    "Sorry, I encountered an error. Please try again or type 'restart' to start over."
)

AI_GREETING = (
    "Welcome to ride booking!\n\n"
    "Tell me where you want to be picked up, where you're going and when. "
    "For example: \"From Gulberg to the airport tomorrow at 3pm\".\n\n"
    "Type 'help' for commands."
)
AI_ENABLED = "Smart mode is on. Tell me about your ride in your own words."
AI_DISABLED = "Step-by-step mode is on."
AI_UNAVAILABLE = "Smart mode is not available right now. Continuing step by step."

EXTRACTION_FAILED = (
    "I apologize for the confusion. Could you please tell me your pickup location, "
    "destination and preferred time?"
)
PAST_TIME = "That time has already passed. When would you like to be picked up?"
NO_DRIVERS = (
    "Sorry, no drivers are available near your pickup at that time.\n\n"
    "Reply with a driver's phone number, or type 'restart' to book a different ride."
)
DRIVER_CHOICE_PROMPT = (
    "Reply 'auto' and I'll assign the best available driver, "
    "or send the phone number of the driver you'd like."
)
SELF_AS_DRIVER = "You can't book yourself as the driver. Please send your driver's phone number or 'auto'."

SLOT_LABELS = {
    "pickup": "pickup location",
    "destination": "destination",
    "time": "pickup time",
}


def trip_summary(slots: RideSlots) -> str:
    lines = []
    if slots.pickup:
        lines.append(f"Pickup: {slots.pickup}")
    if slots.destination:
        lines.append(f"Destination: {slots.destination}")
    if slots.time:
        lines.append(f"Time: {format_display(slots.time)}")
    return "\n".join(lines)


def ask_missing(slots: RideSlots) -> str:
    missing = [SLOT_LABELS[name] for name in slots.missing()]
    if len(missing) > 1:
        wanted = ", ".join(missing[:-1]) + " and " + missing[-1]
    else:
        wanted = missing[0] if missing else "ride details"
    summary = trip_summary(slots)
    prefix = f"Got it.\n{summary}\n\n" if summary else ""
    return f"{prefix}Please tell me your {wanted}."


def preferred_driver_offer(preferred: PreferredDriver, slots: RideSlots) -> str:
    rides = "ride" if preferred.ride_count == 1 else "rides"
    return (
        f"{trip_summary(slots)}\n\n"
        f"You've ridden with {preferred.driver_phone} {preferred.ride_count} {rides} before. "
        "Book with them again?\n\n"
        "Reply 'yes' to book them, 'no' for other options, 'auto' for the best "
        "available driver, or send a different driver's phone number."
    )


def rider_time_conflict(times: list[SuggestedTime]) -> str:
    text = "You already have an appointment around that time."
    if times:
        text += "\n\nHow about one of these?\n"
        text += "\n".join(f"{i}. {t.display}" for i, t in enumerate(times, 1))
    return f"{text}\n\nPlease tell me a different pickup time."


def auto_assigned(phone: str, rating: float, distance_km: float) -> str:
    return f"Assigned driver {phone} ({rating:.1f} stars, {distance_km:.1f}km away)."


def location_rejected(reason: str, slot: str) -> str:
    return (
        f"{reason}\n\nPlease send a more specific {SLOT_LABELS[slot]}: add the area or "
        'street, include the city (e.g. "Main Market, Lahore") or name a nearby landmark.'
    )
