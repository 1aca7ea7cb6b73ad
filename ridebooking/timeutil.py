"""Clock and timezone helpers.

Rides are stored as timezone-aware datetimes. Anything shown to a person
(calendar events, suggested times, same-day checks) uses the configured
calendar timezone.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from ridebooking.config import settings


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.calendar_timezone)


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Attach the configured local timezone to naive datetimes."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=local_tz())
    return dt


def to_local(dt: datetime) -> datetime:
    return ensure_aware(dt).astimezone(local_tz())


def format_slot(dt: datetime) -> str:
    """``YYYY-MM-DD HH:MM`` in local time (the form used in conversations)."""
    return to_local(dt).strftime("%Y-%m-%d %H:%M")


def format_display(dt: datetime) -> str:
    """Human-readable local time, e.g. ``Mar 05, 2026 at 2:30 PM``."""
    local = to_local(dt)
    hour = int(local.strftime("%I"))
    return f"{local.strftime('%b %d, %Y')} at {hour}:{local.strftime('%M %p')}"
