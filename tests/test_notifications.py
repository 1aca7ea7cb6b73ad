"""Tests for alternative times, message texts and the Notifier."""

import os
import sys
from unittest.mock import AsyncMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from fakes import DRIVER, NOW, RIDER, RecordingChannel, local
from ridebooking.channels.base import DeliveryResult
from ridebooking.engine.notifications import (
    Notifier,
    driver_confirmation,
    generate_alternative_times,
    rider_confirmation,
    rider_rejection,
)
from ridebooking.models.ride import (
    AlternativeDriver,
    ConflictResolution,
    RejectionReason,
    Ride,
    RideStatus,
)
from ridebooking.timeutil import to_local


def _ride(reason=None):
    return Ride(
        ride_id="ride_1_abc",
        driver_phone=DRIVER,
        rider_phone=RIDER,
        pickup="Gulberg III",
        destination="DHA Phase 5",
        requested_time=local(14, 30),
        estimated_duration=45,
        status=RideStatus.AUTO_REJECTED if reason else RideStatus.AUTO_ACCEPTED,
        rejection_reason=reason,
        processed_at=NOW,
    )


class TestAlternativeTimes:
    def test_up_to_four_future_times(self):
        times = generate_alternative_times(local(14), NOW)
        assert [t.offset for t in times] == [-120, -60, 60, 120]
        assert times[0].time == "2026-03-10 12:00"
        assert times[0].display == "Mar 10, 2026 at 12:00 PM"

    def test_past_times_skipped(self):
        times = generate_alternative_times(local(12), NOW)
        assert all(t.at > NOW for t in times)
        assert [t.offset for t in times] == [60, 120, 180]

    def test_late_evening_window(self):
        times = generate_alternative_times(local(21), NOW)
        hours = [to_local(t.at).hour for t in times]
        assert all(6 <= h <= 22 for h in hours)
        assert [t.offset for t in times] == [-180, -120, -60, 60]

    def test_overnight_request_keeps_morning_slot(self):
        early = local(3, days=1)
        times = generate_alternative_times(early, NOW)
        assert [to_local(t.at).hour for t in times] == [6]


class TestMessages:
    def test_driver_confirmation(self):
        text = driver_confirmation(_ride())
        assert text.startswith("*New Ride Confirmed!*")
        assert "Rider: +923331112222" in text
        assert "Mar 10, 2026 at 2:30 PM" in text

    def test_rider_confirmation_has_restart_hint(self):
        text = rider_confirmation(_ride())
        assert text.endswith("Type 'restart' to book a new ride.")

    def test_driver_conflict_lists_alternatives(self):
        resolution = ConflictResolution(
            type=RejectionReason.DRIVER_CONFLICT,
            message="busy",
            alternative_drivers=[
                AlternativeDriver(driver_phone="+923009876543", rating=4.5, reason="2.0km away")
            ],
        )
        text = rider_rejection(_ride(RejectionReason.DRIVER_CONFLICT), resolution)
        assert "conflicting appointment" in text
        assert "1. +923009876543 (4.5 stars, 2.0km away)" in text

    def test_rider_conflict_without_suggestions(self):
        text = rider_rejection(_ride(RejectionReason.RIDER_CONFLICT))
        assert "different time" in text

    def test_location_reason_passed_through(self):
        text = rider_rejection(
            _ride(RejectionReason.DRIVER_LOCATION), location_reason="Driver is too far (25.0km)"
        )
        assert "Driver is too far (25.0km)" in text

    def test_accepted_ride_has_no_rejection_text(self):
        with pytest.raises(ValueError):
            rider_rejection(_ride())


class TestNotifier:
    @pytest.mark.asyncio
    async def test_sends_through_channel(self):
        channel = RecordingChannel()
        assert await Notifier(channel).send(RIDER, "hello")
        assert channel.to(RIDER) == ["hello"]

    @pytest.mark.asyncio
    async def test_no_channel(self):
        assert not await Notifier(None).send(RIDER, "hello")

    @pytest.mark.asyncio
    async def test_undelivered(self):
        channel = RecordingChannel()
        channel.send = AsyncMock(return_value=DeliveryResult(delivered=False, error="blocked"))
        assert not await Notifier(channel).send(RIDER, "hello")

    @pytest.mark.asyncio
    async def test_channel_error_swallowed(self):
        channel = RecordingChannel()
        channel.send = AsyncMock(side_effect=RuntimeError("boom"))
        assert not await Notifier(channel).send(RIDER, "hello")
