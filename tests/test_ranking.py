"""Tests for driver scoring and DriverRanker.find_nearest_available."""

import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from fakes import DRIVER, DRIVER_2, DRIVER_3, NOW, RIDER, FakeCalendar, FakeMaps, local
from ridebooking.calendar_providers.base import CalendarEvent
from ridebooking.engine.conflicts import ConflictDetector
from ridebooking.engine.ranking import DriverRanker, score_driver
from ridebooking.maps.base import DistanceResult
from ridebooking.models.driver import CalendarIntegration, Driver, DriverLocation
from ridebooking.models.ride import Ride, RideStatus
from ridebooking.store.memory import InMemoryDriverStore, InMemoryRideStore

PICKUP = "Liberty Market, Lahore"


def _driver(phone, address, rating, rides, calendar=True):
    return Driver(
        phone=phone,
        rating=rating,
        total_rides=rides,
        current_location=DriverLocation(address=address, last_updated=NOW),
        calendar=CalendarIntegration(enabled=calendar),
    )


def _roster(calendar=True):
    return [
        _driver(DRIVER, "Gulberg", 4.0, 50, calendar),
        _driver(DRIVER_2, "Johar Town", 5.0, 10, calendar),
        _driver(DRIVER_3, "Model Town", 3.0, 100, calendar),
    ]


def _maps():
    return FakeMaps({
        ("Gulberg", PICKUP): DistanceResult(km=2.0, minutes=6),
        ("Johar Town", PICKUP): DistanceResult(km=5.0, minutes=14),
        ("Model Town", PICKUP): DistanceResult(km=1.0, minutes=4),
    })


def _ranker(drivers, rides=None, maps=None, calendar=None):
    rides = rides or InMemoryRideStore()
    detector = ConflictDetector(rides, calendar=calendar)
    return DriverRanker(InMemoryDriverStore(drivers), rides, maps, detector)


class TestScoreDriver:
    def test_weighted_formula(self):
        assert score_driver(1.0, 3.0, 100) == pytest.approx(0.8133, abs=1e-4)
        assert score_driver(2.0, 4.0, 50) == pytest.approx(0.7667, abs=1e-4)
        assert score_driver(5.0, 5.0, 10) == pytest.approx(0.6867, abs=1e-4)

    def test_distance_beyond_horizon_scores_zero(self):
        assert score_driver(30.0, 0.0, 0) == 0.0

    def test_monotonic(self):
        for km in (0.0, 3.0, 10.0, 14.0):
            assert score_driver(km, 4.0, 20) >= score_driver(km + 1, 4.0, 20)
        for rating in (1.0, 2.5, 4.0):
            assert score_driver(3.0, rating, 20) <= score_driver(3.0, rating + 1, 20)
        for rides in (0, 40, 99, 150):
            assert score_driver(3.0, 4.0, rides) <= score_driver(3.0, 4.0, rides + 10)


class TestFindNearestAvailable:
    @pytest.mark.asyncio
    async def test_ranked_by_weighted_score(self):
        ranker = _ranker(_roster(), maps=_maps())

        ranked = await ranker.find_nearest_available(PICKUP, NOW + timedelta(hours=2))

        assert [r.phone for r in ranked] == [DRIVER_3, DRIVER, DRIVER_2]
        assert ranked[0].distance_km == 1.0

    @pytest.mark.asyncio
    async def test_max_results(self):
        ranker = _ranker(_roster(), maps=_maps())
        ranked = await ranker.find_nearest_available(PICKUP, NOW + timedelta(hours=2), max_results=1)
        assert [r.phone for r in ranked] == [DRIVER_3]

    @pytest.mark.asyncio
    async def test_exclude(self):
        ranker = _ranker(_roster(), maps=_maps())
        ranked = await ranker.find_nearest_available(
            PICKUP, NOW + timedelta(hours=2), exclude=[DRIVER_3]
        )
        assert DRIVER_3 not in [r.phone for r in ranked]

    @pytest.mark.asyncio
    async def test_drivers_beyond_caps_dropped(self):
        maps = _maps()
        maps.distances[("Johar Town", PICKUP)] = DistanceResult(km=25.0, minutes=40)
        ranker = _ranker(_roster(), maps=maps)

        ranked = await ranker.find_nearest_available(PICKUP, NOW + timedelta(hours=2))
        assert DRIVER_2 not in [r.phone for r in ranked]

    @pytest.mark.asyncio
    async def test_no_maps_no_candidates(self):
        ranker = _ranker(_roster(), maps=None)
        assert await ranker.find_nearest_available(PICKUP, NOW + timedelta(hours=2)) == []

    @pytest.mark.asyncio
    async def test_calendar_busy_driver_excluded(self):
        requested = local(14)
        calendar = FakeCalendar([
            CalendarEvent(
                summary="Airport run",
                description="driver 03005550000",
                start=requested,
                end=requested + timedelta(hours=1),
            )
        ])
        ranker = _ranker(_roster(), maps=_maps(), calendar=calendar)

        ranked = await ranker.find_nearest_available(PICKUP, requested)
        assert [r.phone for r in ranked] == [DRIVER, DRIVER_2]

    @pytest.mark.asyncio
    async def test_availability_failure_excludes_driver(self):
        calendar = FakeCalendar(error=RuntimeError("calendar down"))
        ranker = _ranker(_roster(), maps=_maps(), calendar=calendar)

        ranked = await ranker.find_nearest_available(PICKUP, NOW + timedelta(hours=2))
        assert ranked == []

    @pytest.mark.asyncio
    async def test_database_fallback_without_calendar_integration(self):
        requested = local(14)
        rides = InMemoryRideStore()
        await rides.save(
            Ride(
                driver_phone=DRIVER_3,
                rider_phone=RIDER,
                pickup="Gulberg",
                destination="Model Town",
                requested_time=requested + timedelta(minutes=60),
                status=RideStatus.AUTO_ACCEPTED,
                processed_at=NOW,
            )
        )
        ranker = _ranker(_roster(calendar=False), rides=rides, maps=_maps())

        ranked = await ranker.find_nearest_available(PICKUP, requested)
        assert DRIVER_3 not in [r.phone for r in ranked]

    @pytest.mark.asyncio
    async def test_inactive_drivers_skipped(self):
        roster = _roster()
        roster[2].is_active = False
        ranker = _ranker(roster, maps=_maps())

        ranked = await ranker.find_nearest_available(PICKUP, NOW + timedelta(hours=2))
        assert DRIVER_3 not in [r.phone for r in ranked]
