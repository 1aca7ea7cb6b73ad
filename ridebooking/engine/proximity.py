"""Driver-to-pickup feasibility checks.

Two regimes split on lead time:

  near-term (<= near_term_hours ahead)
      Compare the driver's last known location with the pickup. Missing
      or stale locations pass; too far or too long a drive rejects.

  future booking (> near_term_hours ahead)
      Compare the pickup with the driver's other accepted rides on the
      same local date. A ride whose drop-off (or pickup) is more than
      same_area_threshold away but no more than minimum_gap away leaves
      the driver too little buffer and rejects.

Distance service failures never reject; they pass with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta

from ridebooking.config import settings
from ridebooking.external import call_external
from ridebooking.maps.base import DistanceProvider, DistanceResult
from ridebooking.models.driver import Driver, DriverLocation
from ridebooking.models.ride import Ride, RideStatus
from ridebooking.phone import redact_pii
from ridebooking.store.base import DriverStore, RideStore
from ridebooking.timeutil import ensure_aware, format_display, now_utc, to_local

log = logging.getLogger("ridebooking.proximity")


@dataclass
class ConflictingRide:
    ride_id: str
    time: datetime
    location: str
    leg: str  # "destination" or "pickup"


@dataclass
class ProximityResult:
    valid: bool
    reason: str
    distance_km: float | None = None
    duration_minutes: float | None = None
    conflicting_ride: ConflictingRide | None = None
    warning: str | None = None


async def resolve_last_location(
    driver: Driver | None, driver_phone: str, rides: RideStore
) -> DriverLocation | None:
    """Tracked location, else the drop-off of the latest accepted ride."""
    if driver is not None and driver.current_location is not None:
        return driver.current_location
    last = await rides.last_accepted_for_driver(driver_phone)
    if last is None:
        return None
    return DriverLocation(address=last.destination, last_updated=last.window.end)


class ProximityValidator:
    def __init__(
        self,
        drivers: DriverStore,
        rides: RideStore,
        maps: DistanceProvider | None,
    ) -> None:
        self._drivers = drivers
        self._rides = rides
        self._maps = maps

    async def _distance(self, origin: str, destination: str) -> DistanceResult | None:
        if self._maps is None:
            return None
        maps = self._maps
        return await call_external(
            "maps.distance_duration", lambda: maps.distance_duration(origin, destination)
        )

    async def validate(
        self,
        driver_phone: str,
        pickup: str,
        requested_time: datetime,
        now: datetime | None = None,
    ) -> ProximityResult:
        now = now or now_utc()
        requested_time = ensure_aware(requested_time)
        hours_until = (requested_time - now).total_seconds() / 3600

        try:
            driver = await self._drivers.get(driver_phone)
            if hours_until > settings.near_term_hours:
                return await self._validate_future(driver_phone, pickup, requested_time)
            return await self._validate_near_term(driver, driver_phone, pickup, now)
        except Exception as e:
            log.warning(
                "Proximity check failed for %s, allowing booking: %s",
                redact_pii(driver_phone),
                e,
            )
            return ProximityResult(
                valid=True,
                reason="Location validation unavailable",
                warning=f"Location validation failed: {e}",
            )

    # ── Near-term ─────────────────────────────────────────────

    async def _validate_near_term(
        self, driver: Driver | None, driver_phone: str, pickup: str, now: datetime
    ) -> ProximityResult:
        location = await resolve_last_location(driver, driver_phone, self._rides)
        if location is None:
            return ProximityResult(valid=True, reason="First ride for driver, no previous location")

        age = now - ensure_aware(location.last_updated)
        if age > timedelta(minutes=settings.location_stale_minutes):
            return ProximityResult(
                valid=True,
                reason="Driver location is stale",
                warning=(
                    f"Driver location is {int(age.total_seconds() // 60)} minutes old, "
                    "skipping distance check"
                ),
            )

        result = await self._distance(location.address, pickup)
        if result is None:
            return ProximityResult(
                valid=True,
                reason="Distance unavailable",
                warning="Could not calculate distance to pickup",
            )

        area = driver.service_area if driver else None
        max_km = (area.max_distance_km if area else None) or settings.max_pickup_distance_km
        max_minutes = (
            (area.max_duration_minutes if area else None) or settings.max_pickup_duration_minutes
        )

        if result.km > max_km:
            return ProximityResult(
                valid=False,
                reason=(
                    f"Driver is too far from pickup location "
                    f"({result.km:.1f}km away, max {max_km:g}km)"
                ),
                distance_km=result.km,
                duration_minutes=result.minutes,
            )
        if result.minutes > max_minutes:
            return ProximityResult(
                valid=False,
                reason=(
                    f"Driver would take too long to reach pickup "
                    f"({result.minutes:.0f} min away, max {max_minutes:g} min)"
                ),
                distance_km=result.km,
                duration_minutes=result.minutes,
            )
        return ProximityResult(
            valid=True,
            reason="Driver is within range",
            distance_km=result.km,
            duration_minutes=result.minutes,
        )

    # ── Future booking ────────────────────────────────────────

    async def _validate_future(
        self, driver_phone: str, pickup: str, requested_time: datetime
    ) -> ProximityResult:
        local = to_local(requested_time)
        day_start = datetime.combine(local.date(), time.min, tzinfo=local.tzinfo)
        day_end = day_start + timedelta(days=1)

        same_day: list[Ride] = await self._rides.find(
            driver_phone=driver_phone,
            statuses=(RideStatus.AUTO_ACCEPTED,),
            starts_after=day_start,
            starts_before=day_end,
        )
        same_day = [r for r in same_day if r.driver_phone == driver_phone]
        if not same_day:
            return ProximityResult(valid=True, reason="No other rides on this date")

        for ride in same_day:
            for leg, location in (("destination", ride.destination), ("pickup", ride.pickup)):
                result = await self._distance(location, pickup)
                if result is None:
                    continue
                if settings.same_area_threshold_minutes < result.minutes <= settings.minimum_gap_minutes:
                    return ProximityResult(
                        valid=False,
                        reason=(
                            f"Driver has another ride too close on the same date "
                            f"({format_display(ride.requested_time)}, "
                            f"{result.minutes:.0f} min from its {leg})"
                        ),
                        distance_km=result.km,
                        duration_minutes=result.minutes,
                        conflicting_ride=ConflictingRide(
                            ride_id=ride.ride_id,
                            time=ride.requested_time,
                            location=location,
                            leg=leg,
                        ),
                    )

        return ProximityResult(valid=True, reason="Same-day rides are compatible")
