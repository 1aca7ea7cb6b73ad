"""Parse free-text pickup times typed by riders.

Accepted forms (local time):
  now / asap              -> 15 minutes from now
  today 3pm, tomorrow 9:30am
  in 2 hours, 45 min later, 2 hours from now
  3pm, 15:30             -> today, or tomorrow if already past
  2026-03-05 14:30
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from dateutil import parser as dtparser

from ridebooking.errors import TimeParseError
from ridebooking.timeutil import local_tz, to_local

ASAP_LEAD_MINUTES = 15

LOCATION_WORDS = {
    "work", "home", "office", "school", "mall", "airport", "restaurant",
    "hotel", "hospital", "station", "stop", "place", "location", "address",
    "building", "center", "park", "shop", "store", "market", "plaza",
}

_BARE_CLOCK = re.compile(r"^\d{1,2}(?::\d{2})?\s*(?:am|pm)?$")
_HAS_CLOCK = re.compile(r"\d:\d{2}|\d\s*(?:am|pm)\b")
_RELATIVE = re.compile(r"(\d+)\s*(hour|hr|minute|min)s?\s*(from now|later)?", re.IGNORECASE)

FORMAT_HELP = (
    'Please use formats like "3pm" or "15:30", "tomorrow 9am", "in 2 hours", or "now".'
)


def _on_day(text: str, day: datetime) -> datetime:
    """Read ``text`` with dateutil, filling missing fields from ``day``.

    Raises ValueError (dateutil's ParserError) for unreadable text or an
    out-of-range clock such as ``13pm`` or ``25:00``.
    """
    # A lone hour would otherwise be read as a day of the month
    if text.isdigit():
        text += ":00"
    default = day.replace(hour=0, minute=0, tzinfo=None)
    try:
        parsed = dtparser.parse(text, default=default)
    except OverflowError as e:
        raise ValueError(str(e)) from e
    return parsed.replace(tzinfo=local_tz())


def parse_time_input(text: str, now: datetime) -> datetime:
    """Return the pickup time ``text`` describes, as a local aware datetime.

    Raises TimeParseError with a rider-facing message when the text is not
    a usable future time.
    """
    clean = (text or "").strip().lower()
    local_now = to_local(now).replace(second=0, microsecond=0)

    if clean in LOCATION_WORDS:
        raise TimeParseError(
            f'"{text.strip()}" looks like a location, not a time. '
            'Please give a time like "3pm", "tomorrow 9am" or "in 2 hours".'
        )
    if "yesterday" in clean:
        raise TimeParseError(
            'Rides can\'t be booked in the past. Try "tomorrow 3pm" or "in 2 hours".'
        )
    if clean in ("now", "asap", "right now"):
        return local_now + timedelta(minutes=ASAP_LEAD_MINUTES)
    if len(clean) < 2 or not re.search(r"\d", clean):
        raise TimeParseError(f"I couldn't understand that time. {FORMAT_HELP}")

    for word, days in (("tomorrow", 1), ("today", 0)):
        if word in clean:
            clock = clean.replace(word, " ").strip()
            try:
                parsed = _on_day(clock, local_now + timedelta(days=days))
            except ValueError:
                raise TimeParseError(
                    f'Could not understand "{word}" time. Try "{word} 3pm" or "{word} 9:30am".'
                )
            if parsed <= now:
                raise TimeParseError("That time has already passed today. Please give a later time.")
            return parsed

    relative = _RELATIVE.search(clean)
    if relative:
        amount = int(relative.group(1))
        unit = relative.group(2).lower()
        delta = timedelta(hours=amount) if unit.startswith("h") else timedelta(minutes=amount)
        return local_now + delta

    if _BARE_CLOCK.match(clean):
        try:
            parsed = _on_day(clean, local_now)
        except ValueError:
            raise TimeParseError(f'"{text.strip()}" is not a valid time. {FORMAT_HELP}')
        if parsed <= now:
            parsed += timedelta(days=1)
        return parsed

    if not _HAS_CLOCK.search(clean):
        raise TimeParseError(f'Please include a time of day in "{text.strip()}". {FORMAT_HELP}')
    try:
        parsed = _on_day(clean, local_now)
    except ValueError:
        raise TimeParseError(f'Could not understand "{text.strip()}". {FORMAT_HELP}')
    if parsed <= now:
        raise TimeParseError("That time has already passed. Please give a future time.")
    return parsed
