"""Rider/driver message texts and best-effort delivery."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ridebooking.channels.base import DeliveryResult, MessageChannel
from ridebooking.external import call_external
from ridebooking.models.ride import (
    ConflictResolution,
    RejectionReason,
    Ride,
    SuggestedTime,
)
from ridebooking.phone import redact_pii
from ridebooking.timeutil import ensure_aware, format_display, format_slot, to_local

log = logging.getLogger("ridebooking.notifications")

ALTERNATIVE_OFFSETS = (-180, -120, -60, 60, 120, 180)
EARLIEST_HOUR = 6
LATEST_HOUR = 22
MAX_ALTERNATIVES = 4

RESTART_HINT = "Type 'restart' to book a new ride."
SYSTEM_ERROR_TEXT = (
    "Sorry, something went wrong while booking your ride. "
    "Please try again in a few minutes."
)


def generate_alternative_times(requested: datetime, now: datetime) -> list[SuggestedTime]:
    """Up to four future times 1-3 hours either side, within 06:00-22:00 local."""
    requested = ensure_aware(requested)
    found = []
    for offset in ALTERNATIVE_OFFSETS:
        candidate = requested + timedelta(minutes=offset)
        hour = to_local(candidate).hour
        if candidate > now and EARLIEST_HOUR <= hour <= LATEST_HOUR:
            found.append(
                SuggestedTime(
                    time=format_slot(candidate),
                    display=format_display(candidate),
                    offset=offset,
                    at=candidate,
                )
            )
    return found[:MAX_ALTERNATIVES]


def _trip_lines(ride: Ride) -> str:
    return (
        f"Pickup: {ride.pickup}\n"
        f"Destination: {ride.destination}\n"
        f"Time: {format_display(ride.requested_time)}"
    )


def driver_confirmation(ride: Ride) -> str:
    return (
        "*New Ride Confirmed!*\n\n"
        f"{_trip_lines(ride)}\n"
        f"Duration: {ride.estimated_duration} minutes\n"
        f"Rider: {ride.rider_phone}\n\n"
        f"Ride ID: {ride.ride_id}"
    )


def rider_confirmation(ride: Ride) -> str:
    return (
        "*Ride Confirmed!*\n\n"
        f"{_trip_lines(ride)}\n"
        f"Duration: {ride.estimated_duration} minutes\n"
        f"Driver: {ride.driver_phone}\n\n"
        f"Ride ID: {ride.ride_id}\n\n"
        f"{RESTART_HINT}"
    )


def rider_rejection(
    ride: Ride,
    resolution: ConflictResolution | None = None,
    location_reason: str = "",
) -> str:
    text = f"*Ride Request Rejected*\n\n{_trip_lines(ride)}\n\n"

    reason = ride.rejection_reason
    if reason == RejectionReason.DRIVER_CONFLICT:
        text += "Reason: Your driver has a conflicting appointment at this time.\n\n"
        if resolution and resolution.alternative_drivers:
            text += "Available drivers:\n"
            for i, alt in enumerate(resolution.alternative_drivers, 1):
                text += f"{i}. {alt.driver_phone} ({alt.rating:.1f} stars, {alt.reason})\n"
            text += "\n"
        text += (
            "Reply with a different driver's phone number, "
            "or 'auto' to let us pick one for you."
        )
    elif reason == RejectionReason.RIDER_CONFLICT:
        text += "Reason: You have a conflicting appointment at this time.\n\n"
        if resolution and resolution.suggested_times:
            text += "Suggested alternative times:\n"
            for i, alt in enumerate(resolution.suggested_times, 1):
                text += f"{i}. {alt.display}\n"
            text += "\nReply with the number of a suggested time or a different time."
        else:
            text += "Reply with a different time for your ride."
    elif reason == RejectionReason.DRIVER_LOCATION:
        text += f"Reason: {location_reason or 'Driver is too far from your pickup location.'}\n\n"
        text += "Reply with a different driver's phone number, or 'auto' for the nearest driver."
    elif reason == RejectionReason.SYSTEM_ERROR:
        text += SYSTEM_ERROR_TEXT
    else:
        raise ValueError(f"unhandled rejection reason: {reason!r}")

    return f"{text}\n\n{RESTART_HINT}"


class Notifier:
    """Sends messages through a channel; never raises into the booking flow."""

    def __init__(self, channel: MessageChannel | None) -> None:
        self._channel = channel

    async def send(self, destination: str, text: str) -> bool:
        if self._channel is None:
            log.info("No message channel, dropping message to %s", redact_pii(destination))
            return False
        channel = self._channel
        try:
            result: DeliveryResult = await call_external(
                "messaging.send", lambda: channel.send(destination, text)
            )
        except Exception:
            log.exception("Message delivery to %s failed", redact_pii(destination))
            return False
        if not result.delivered:
            log.warning("Message to %s not delivered: %s", redact_pii(destination), result.error)
        return result.delivered
