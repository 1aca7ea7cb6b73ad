"""Conflict detection against the calendar and existing bookings.

A requested ride occupies the half-open window ``[time, time + duration)``.
Both sources are searched over that window padded on each side, and every
item overlapping the requested window is classified by the party it
belongs to. Rider conflicts outrank driver conflicts when choosing the
rejection reason (configurable via ``rider_conflict_priority``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ridebooking.calendar_providers.base import CalendarEvent, CalendarProvider
from ridebooking.config import settings
from ridebooking.external import call_external
from ridebooking.models.ride import (
    BLOCKING_STATUSES,
    ConflictParty,
    ConflictRecord,
    ConflictSource,
    RejectionReason,
    Ride,
)
from ridebooking.models.window import TimeWindow
from ridebooking.phone import phone_variants, redact_pii
from ridebooking.store.base import RideStore

log = logging.getLogger("ridebooking.conflicts")


@dataclass
class ConflictCheck:
    has_conflict: bool
    rejection_reason: RejectionReason | None
    conflicts: list[ConflictRecord] = field(default_factory=list)
    summary: str = "No conflicts found"
    calendar_checked: bool = True


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    return a.overlaps(b)


def mentions(text: str, phone: str | None) -> bool:
    """True when free text references ``phone`` in any tolerated form."""
    if not phone or not phone.strip():
        return False
    text = text.lower()
    return any(variant.lower() in text for variant in phone_variants(phone.strip()))


def classify(driver_hit: bool, rider_hit: bool) -> ConflictParty | None:
    if driver_hit and rider_hit:
        return ConflictParty.BOTH
    if driver_hit:
        return ConflictParty.DRIVER
    if rider_hit:
        return ConflictParty.RIDER
    return None


def summarize(conflicts: list[ConflictRecord]) -> str:
    if not conflicts:
        return "No conflicts found"
    parts = ", ".join(f"{c.party.value} - {c.title} (overlapping)" for c in conflicts)
    return f"{len(conflicts)} conflict(s) found: {parts}"


def choose_reason(
    conflicts: list[ConflictRecord], rider_priority: bool = True
) -> RejectionReason | None:
    driver = any(c.party in (ConflictParty.DRIVER, ConflictParty.BOTH) for c in conflicts)
    rider = any(c.party in (ConflictParty.RIDER, ConflictParty.BOTH) for c in conflicts)
    if not (driver or rider):
        return None
    if rider and (rider_priority or not driver):
        return RejectionReason.RIDER_CONFLICT
    return RejectionReason.DRIVER_CONFLICT


class ConflictDetector:
    """Finds overlapping calendar events and bookings for a driver and rider."""

    def __init__(
        self,
        rides: RideStore,
        calendar: CalendarProvider | None = None,
        calendar_id: str | None = None,
        padding_minutes: int | None = None,
        rider_priority: bool | None = None,
    ) -> None:
        self._rides = rides
        self._calendar = calendar
        self._calendar_id = calendar_id or settings.google_calendar_id
        self._padding = (
            settings.conflict_search_padding_minutes if padding_minutes is None else padding_minutes
        )
        self._rider_priority = (
            settings.rider_conflict_priority if rider_priority is None else rider_priority
        )

    async def detect(
        self,
        driver_phone: str | None,
        rider_phone: str | None,
        window: TimeWindow,
        padding_minutes: int | None = None,
        calendar_id: str | None = None,
        strict_calendar: bool = False,
    ) -> ConflictCheck:
        """Check both sources for conflicts with ``window``.

        Calendar errors are logged and the calendar source is skipped,
        unless ``strict_calendar`` is set, in which case they propagate.
        """
        padding = self._padding if padding_minutes is None else padding_minutes
        search = window.padded(padding)

        conflicts = await self._booking_conflicts(driver_phone, rider_phone, window, search)
        known_events = {c.reference_id for c in conflicts if c.reference_id}

        calendar_checked = True
        try:
            conflicts.extend(
                c
                for c in await self.calendar_conflicts(
                    driver_phone, rider_phone, window, search, calendar_id
                )
                if c.reference_id not in known_events
            )
        except Exception as e:
            if strict_calendar:
                raise
            calendar_checked = False
            log.warning("Calendar unavailable, checking bookings only: %s", e)

        reason = choose_reason(conflicts, self._rider_priority)
        summary = summarize(conflicts)
        if conflicts:
            log.info(
                "Conflicts for driver=%s rider=%s: %s",
                redact_pii(driver_phone or ""),
                redact_pii(rider_phone or ""),
                summary,
            )
        return ConflictCheck(
            has_conflict=bool(conflicts),
            rejection_reason=reason,
            conflicts=conflicts,
            summary=summary,
            calendar_checked=calendar_checked,
        )

    async def calendar_conflicts(
        self,
        driver_phone: str | None,
        rider_phone: str | None,
        window: TimeWindow,
        search: TimeWindow,
        calendar_id: str | None = None,
    ) -> list[ConflictRecord]:
        """Calendar events in ``search`` that overlap ``window`` and name a party."""
        if self._calendar is None:
            return []
        calendar = self._calendar
        cal_id = calendar_id or self._calendar_id

        events: list[CalendarEvent] = await call_external(
            "calendar.list_events",
            lambda: calendar.list_events(cal_id, search.start, search.end),
        )

        found = []
        for event in events:
            if not event.window.overlaps(window):
                continue
            party = classify(mentions(event.text, driver_phone), mentions(event.text, rider_phone))
            if party is None:
                continue
            found.append(
                ConflictRecord(
                    party=party,
                    source=ConflictSource.CALENDAR,
                    title=event.summary or "Untitled Event",
                    start=event.start,
                    end=event.end,
                    reference_id=event.event_id,
                )
            )
        return found

    async def _booking_conflicts(
        self,
        driver_phone: str | None,
        rider_phone: str | None,
        window: TimeWindow,
        search: TimeWindow,
    ) -> list[ConflictRecord]:
        if not driver_phone and not rider_phone:
            return []

        # Either party may appear in either role. A ride can start before
        # the padded window and still run into it.
        rides: list[Ride] = await self._rides.find(
            parties=[p for p in (driver_phone, rider_phone) if p],
            statuses=BLOCKING_STATUSES,
            starts_before=search.end,
        )

        found = []
        for ride in rides:
            if not ride.window.overlaps(window):
                continue
            party = classify(
                bool(driver_phone) and driver_phone in (ride.driver_phone, ride.rider_phone),
                bool(rider_phone) and rider_phone in (ride.driver_phone, ride.rider_phone),
            )
            if party is None:
                continue
            found.append(
                ConflictRecord(
                    party=party,
                    source=ConflictSource.BOOKING,
                    title=f"Ride: {ride.pickup} to {ride.destination}",
                    start=ride.window.start,
                    end=ride.window.end,
                    reference_id=ride.calendar_event_id or ride.ride_id,
                )
            )
        return found
