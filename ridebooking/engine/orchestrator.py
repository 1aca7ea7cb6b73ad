"""Booking orchestrator: the accept/reject decision for one ride request.

Order of work for ``book``:

  1. proximity validation (a failing driver is rejected before anything else)
  2. trip distance (best effort)
  3. conflict detection over [time, time + duration)
  4. decision and conflict resolution
  5. persist the ride (always)
  6. calendar event, driver location, rider-driver affinity (accepted only)
  7. rider stats
  8. notifications

Steps 1-5 run while holding a lock per phone involved, so two requests
sharing a driver or rider, in any role, are decided one after the other. Steps 6-8
run after the decision is committed and can only log their failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from ridebooking.calendar_providers.base import CalendarEvent, CalendarProvider
from ridebooking.config import settings
from ridebooking.engine.conflicts import ConflictCheck, ConflictDetector
from ridebooking.engine.notifications import (
    Notifier,
    driver_confirmation,
    generate_alternative_times,
    rider_confirmation,
    rider_rejection,
)
from ridebooking.engine.proximity import ProximityResult, ProximityValidator
from ridebooking.engine.ranking import DriverRanker
from ridebooking.errors import BookingValidationError
from ridebooking.external import call_external
from ridebooking.maps.base import DistanceProvider
from ridebooking.models.driver import DriverLocation
from ridebooking.models.ride import (
    AlternativeDriver,
    BookingOutcome,
    BookingRequest,
    ConflictResolution,
    RejectionReason,
    Ride,
    RideStatus,
)
from ridebooking.models.window import TimeWindow
from ridebooking.phone import redact_pii
from ridebooking.preferences.base import PreferenceStore
from ridebooking.store.base import DriverStore, RideStore, RiderStore
from ridebooking.store.locks import KeyedLocks
from ridebooking.timeutil import ensure_aware, now_utc

log = logging.getLogger("ridebooking.orchestrator")

MAX_ALTERNATIVE_DRIVERS = 3
CALENDAR_REMINDERS = [("popup", 15), ("email", 30)]


@dataclass
class _Decision:
    ride: Ride
    proximity: ProximityResult
    conflicts: ConflictCheck | None = None


def validate_request(
    driver_phone: str,
    rider_phone: str,
    pickup: str,
    destination: str,
    time: datetime | None,
    estimated_duration: int | None,
    now: datetime,
) -> BookingRequest:
    """Build a BookingRequest or raise BookingValidationError."""
    if time is None:
        raise BookingValidationError("Pickup time is required", field="time")
    try:
        request = BookingRequest(
            driver_phone=driver_phone or "",
            rider_phone=rider_phone or "",
            pickup=pickup or "",
            destination=destination or "",
            time=ensure_aware(time),
            estimated_duration=estimated_duration or 60,
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise BookingValidationError(f"{field}: {first.get('msg', 'invalid value')}", field=field) from e

    if request.time <= now:
        raise BookingValidationError("Requested time is in the past", field="time")
    return request


class BookingOrchestrator:
    def __init__(
        self,
        rides: RideStore,
        drivers: DriverStore,
        riders: RiderStore,
        proximity: ProximityValidator,
        detector: ConflictDetector,
        ranker: DriverRanker,
        notifier: Notifier,
        locks: KeyedLocks,
        calendar: CalendarProvider | None = None,
        maps: DistanceProvider | None = None,
        preferences: PreferenceStore | None = None,
        calendar_id: str | None = None,
    ) -> None:
        self._rides = rides
        self._drivers = drivers
        self._riders = riders
        self._proximity = proximity
        self._detector = detector
        self._ranker = ranker
        self._notifier = notifier
        self._locks = locks
        self._calendar = calendar
        self._maps = maps
        self._preferences = preferences
        self._calendar_id = calendar_id or settings.google_calendar_id

    @property
    def ranker(self) -> DriverRanker:
        return self._ranker

    @property
    def detector(self) -> ConflictDetector:
        return self._detector

    async def get_ride_status(self, ride_id: str) -> Ride | None:
        return await self._rides.get(ride_id)

    async def book(
        self,
        driver_phone: str,
        rider_phone: str,
        pickup: str,
        destination: str,
        time: datetime | None,
        estimated_duration: int | None = None,
        notify_rider: bool = True,
        now: datetime | None = None,
    ) -> BookingOutcome:
        """Decide, persist and announce one ride request.

        Raises BookingValidationError for malformed input; every other
        problem ends in a persisted decision.
        """
        now = now or now_utc()
        request = validate_request(
            driver_phone, rider_phone, pickup, destination, time, estimated_duration, now
        )

        # Keyed by phone alone: one person may drive one ride and ride in another
        async with self._locks.hold(
            f"phone:{request.driver_phone}", f"phone:{request.rider_phone}"
        ):
            try:
                decision = await self._decide(request, now)
                await self._rides.save(decision.ride)
            except Exception:
                log.exception(
                    "Booking failed for rider %s, recording system error",
                    redact_pii(request.rider_phone),
                )
                return await self._system_error(request, now, notify_rider)

        ride = decision.ride
        log.info(
            "Ride %s %s (driver=%s rider=%s reason=%s)",
            ride.ride_id,
            ride.status.value,
            redact_pii(ride.driver_phone),
            redact_pii(ride.rider_phone),
            ride.rejection_reason.value if ride.rejection_reason else "-",
        )

        accepted = ride.status == RideStatus.AUTO_ACCEPTED
        if accepted:
            await self._after_acceptance(ride, now)

        await self._best_effort(
            "rider stats",
            lambda: self._riders.record_outcome(ride.rider_phone, accepted, now),
        )

        message = (
            rider_confirmation(ride)
            if accepted
            else rider_rejection(ride, ride.conflict_resolution, decision.proximity.reason)
        )
        if accepted:
            await self._notifier.send(ride.driver_phone, driver_confirmation(ride))
        if notify_rider:
            await self._notifier.send(ride.rider_phone, message)

        return BookingOutcome(
            success=accepted,
            ride_id=ride.ride_id,
            status=ride.status,
            rejection_reason=ride.rejection_reason,
            conflict_resolution=ride.conflict_resolution,
            calendar_event_id=ride.calendar_event_id,
            conflicts=ride.conflict_details,
            conflict_summary=ride.conflict_summary,
            distance_km=ride.distance_km,
            location_warning=decision.proximity.warning,
            message=message,
        )

    # ── Decision ──────────────────────────────────────────────

    async def _decide(self, request: BookingRequest, now: datetime) -> _Decision:
        proximity = await self._proximity.validate(
            request.driver_phone, request.pickup, request.time, now=now
        )
        if not proximity.valid:
            ride = self._new_ride(
                request,
                now,
                status=RideStatus.AUTO_REJECTED,
                rejection_reason=RejectionReason.DRIVER_LOCATION,
                distance_km=proximity.distance_km,
            )
            return _Decision(ride=ride, proximity=proximity)

        distance_km = await self._trip_distance(request.pickup, request.destination)

        window = TimeWindow.starting_at(request.time, request.estimated_duration)
        check = await self._detector.detect(request.driver_phone, request.rider_phone, window)

        if not check.has_conflict or check.rejection_reason is None:
            ride = self._new_ride(
                request,
                now,
                status=RideStatus.AUTO_ACCEPTED,
                distance_km=distance_km,
                conflict_summary=check.summary,
            )
            return _Decision(ride=ride, proximity=proximity, conflicts=check)

        resolution = await self._resolution(request, check.rejection_reason, now)
        ride = self._new_ride(
            request,
            now,
            status=RideStatus.AUTO_REJECTED,
            rejection_reason=check.rejection_reason,
            distance_km=distance_km,
            conflict_details=check.conflicts,
            conflict_summary=check.summary,
            conflict_resolution=resolution,
        )
        return _Decision(ride=ride, proximity=proximity, conflicts=check)

    @staticmethod
    def _new_ride(request: BookingRequest, now: datetime, **fields: Any) -> Ride:
        return Ride(
            driver_phone=request.driver_phone,
            rider_phone=request.rider_phone,
            pickup=request.pickup,
            destination=request.destination,
            requested_time=request.time,
            estimated_duration=request.estimated_duration,
            processed_at=now,
            **fields,
        )

    async def _trip_distance(self, pickup: str, destination: str) -> float | None:
        if self._maps is None:
            return None
        maps = self._maps
        try:
            result = await call_external(
                "maps.distance_duration", lambda: maps.distance_duration(pickup, destination)
            )
        except Exception as e:
            log.warning("Trip distance unavailable: %s", e)
            return None
        return round(result.km, 1) if result else None

    async def _resolution(
        self, request: BookingRequest, reason: RejectionReason, now: datetime
    ) -> ConflictResolution:
        if reason == RejectionReason.DRIVER_CONFLICT:
            alternatives: list[AlternativeDriver] = []
            try:
                ranked = await self._ranker.find_nearest_available(
                    request.pickup,
                    request.time,
                    max_results=MAX_ALTERNATIVE_DRIVERS,
                    exclude=(request.driver_phone, request.rider_phone),
                )
                alternatives = [
                    AlternativeDriver(
                        driver_phone=r.phone,
                        ride_count=r.driver.total_rides,
                        rating=r.driver.rating,
                        reason=f"{r.distance_km:.1f}km away",
                    )
                    for r in ranked
                ]
            except Exception:
                log.exception("Could not rank alternative drivers")
            return ConflictResolution(
                type=reason,
                message="The requested driver is not available at this time.",
                suggestion="Please provide a different driver's phone number.",
                alternative_drivers=alternatives,
            )

        return ConflictResolution(
            type=reason,
            message="You have a conflicting appointment at this time.",
            suggestion="Please choose a suggested time or provide a different time for your ride.",
            suggested_times=generate_alternative_times(request.time, now),
        )

    async def _system_error(
        self, request: BookingRequest, now: datetime, notify_rider: bool
    ) -> BookingOutcome:
        ride = self._new_ride(
            request,
            now,
            status=RideStatus.AUTO_REJECTED,
            rejection_reason=RejectionReason.SYSTEM_ERROR,
        )
        try:
            await self._rides.save(ride)
        except Exception:
            log.exception("Could not record system error for ride %s", ride.ride_id)

        message = rider_rejection(ride)
        if notify_rider:
            await self._notifier.send(ride.rider_phone, message)
        return BookingOutcome(
            success=False,
            ride_id=ride.ride_id,
            status=ride.status,
            rejection_reason=ride.rejection_reason,
            message=message,
        )

    # ── Side effects ──────────────────────────────────────────

    async def _best_effort(self, name: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await factory()
        except Exception:
            log.exception("Best-effort step failed: %s", name)
            return None

    async def _after_acceptance(self, ride: Ride, now: datetime) -> None:
        event_id = await self._best_effort("calendar event", lambda: self._write_calendar(ride))
        if event_id:
            ride.calendar_event_id = event_id
            await self._best_effort("ride calendar link", lambda: self._rides.save(ride))

        await self._best_effort(
            "driver location",
            lambda: self._drivers.update_location(
                ride.driver_phone,
                DriverLocation(address=ride.destination, last_updated=now),
            ),
        )

        if self._preferences is not None:
            preferences = self._preferences
            await self._best_effort(
                "driver preference",
                lambda: preferences.record_affinity(
                    ride.rider_phone, ride.driver_phone, ride.pickup, ride.destination
                ),
            )

    async def _write_calendar(self, ride: Ride) -> str | None:
        if self._calendar is None:
            log.info("No calendar configured, skipping event for ride %s", ride.ride_id)
            return None
        calendar = self._calendar
        window = ride.window
        event = CalendarEvent(
            summary=f"Ride: {ride.pickup} to {ride.destination}",
            description=(
                "Ride booking via WhatsApp\n"
                f"Ride ID: {ride.ride_id}\n"
                f"Driver: {ride.driver_phone}\n"
                f"Rider: {ride.rider_phone}"
            ),
            location=ride.pickup,
            start=window.start,
            end=window.end,
            reminders=list(CALENDAR_REMINDERS),
        )
        return await call_external(
            "calendar.insert_event", lambda: calendar.insert_event(self._calendar_id, event)
        )
