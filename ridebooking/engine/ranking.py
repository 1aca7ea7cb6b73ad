"""Driver ranking and auto-assignment."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from ridebooking.config import settings
from ridebooking.engine.conflicts import ConflictDetector
from ridebooking.engine.proximity import resolve_last_location
from ridebooking.external import call_external
from ridebooking.maps.base import DistanceProvider, DistanceResult
from ridebooking.models.driver import Driver
from ridebooking.models.ride import BLOCKING_STATUSES
from ridebooking.models.window import TimeWindow
from ridebooking.phone import redact_pii
from ridebooking.store.base import DriverStore, RideStore
from ridebooking.timeutil import ensure_aware

log = logging.getLogger("ridebooking.ranking")

DISTANCE_WEIGHT = 0.4
RATING_WEIGHT = 0.4
EXPERIENCE_WEIGHT = 0.2
DISTANCE_HORIZON_KM = 15.0
EXPERIENCE_CAP_RIDES = 100
AVAILABILITY_DURATION_MINUTES = 60


def score_driver(distance_km: float, rating: float, total_rides: int) -> float:
    """0.4 * distance + 0.4 * rating + 0.2 * experience, each scaled to [0, 1]."""
    distance_score = max(0.0, (DISTANCE_HORIZON_KM - distance_km) / DISTANCE_HORIZON_KM)
    rating_score = rating / 5
    experience_score = min(total_rides / EXPERIENCE_CAP_RIDES, 1.0)
    return (
        DISTANCE_WEIGHT * distance_score
        + RATING_WEIGHT * rating_score
        + EXPERIENCE_WEIGHT * experience_score
    )


@dataclass
class RankedDriver:
    driver: Driver
    distance_km: float
    duration_minutes: float
    score: float

    @property
    def phone(self) -> str:
        return self.driver.phone


class DriverRanker:
    def __init__(
        self,
        drivers: DriverStore,
        rides: RideStore,
        maps: DistanceProvider | None,
        detector: ConflictDetector,
    ) -> None:
        self._drivers = drivers
        self._rides = rides
        self._maps = maps
        self._detector = detector

    async def find_nearest_available(
        self,
        pickup: str,
        requested_time: datetime,
        max_results: int | None = None,
        exclude: Iterable[str] = (),
    ) -> list[RankedDriver]:
        """Rank feasible, available drivers for a pickup by weighted score."""
        if self._maps is None:
            log.warning("No distance provider configured, cannot rank drivers")
            return []
        max_results = settings.ranking_max_results if max_results is None else max_results
        requested_time = ensure_aware(requested_time)
        excluded = set(exclude)

        roster = [d for d in await self._drivers.list_active() if d.phone not in excluded]
        roster.sort(key=lambda d: (d.rating, d.total_rides), reverse=True)

        ranked: list[RankedDriver] = []
        for driver in roster:
            location = await resolve_last_location(driver, driver.phone, self._rides)
            if location is None:
                continue

            try:
                result = await self._distance(location.address, pickup)
            except Exception as e:
                log.warning("Distance lookup failed for %s: %s", redact_pii(driver.phone), e)
                continue
            if result is None:
                continue
            if (
                result.km > settings.ranking_max_distance_km
                or result.minutes > settings.ranking_max_duration_minutes
            ):
                continue

            if not await self._is_available(driver, requested_time):
                continue

            ranked.append(
                RankedDriver(
                    driver=driver,
                    distance_km=round(result.km, 1),
                    duration_minutes=result.minutes,
                    score=score_driver(result.km, driver.rating, driver.total_rides),
                )
            )

        ranked.sort(key=lambda r: r.score, reverse=True)
        log.info("Ranked %d available driver(s) for pickup", len(ranked))
        return ranked[:max_results]

    async def _distance(self, origin: str, destination: str) -> DistanceResult | None:
        maps = self._maps
        return await call_external(
            "maps.distance_duration", lambda: maps.distance_duration(origin, destination)
        )

    async def _is_available(self, driver: Driver, requested_time: datetime) -> bool:
        """Availability at ``requested_time``. Any error counts as unavailable."""
        try:
            if driver.calendar.enabled:
                window = TimeWindow.starting_at(requested_time, AVAILABILITY_DURATION_MINUTES)
                check = await self._detector.detect(
                    driver.phone,
                    None,
                    window,
                    calendar_id=driver.calendar.calendar_id or None,
                    strict_calendar=True,
                )
                return not check.has_conflict

            nearby = await self._rides.find(
                driver_phone=driver.phone,
                statuses=BLOCKING_STATUSES,
                starts_after=requested_time - timedelta(minutes=settings.availability_before_minutes),
                starts_before=requested_time + timedelta(minutes=settings.availability_after_minutes),
            )
            return not nearby
        except Exception as e:
            log.warning(
                "Availability check failed for %s, excluding: %s", redact_pii(driver.phone), e
            )
            return False
