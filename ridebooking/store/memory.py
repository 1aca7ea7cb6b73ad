"""In-memory stores for a single process."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from ridebooking.config import settings
from ridebooking.models.conversation import Conversation
from ridebooking.models.driver import Driver, DriverLocation, RiderStats
from ridebooking.models.ride import Ride, RideStatus
from ridebooking.phone import redact_pii

from .base import ConversationStore, DriverStore, RideStore, RiderStore

log = logging.getLogger("ridebooking.store")


class InMemoryRideStore(RideStore):
    def __init__(self) -> None:
        self._rides: dict[str, Ride] = {}

    async def save(self, ride: Ride) -> None:
        self._rides[ride.ride_id] = ride.model_copy(deep=True)

    async def get(self, ride_id: str) -> Optional[Ride]:
        ride = self._rides.get(ride_id)
        return ride.model_copy(deep=True) if ride else None

    async def find(
        self,
        driver_phone: str | None = None,
        rider_phone: str | None = None,
        statuses: Iterable[RideStatus] | None = None,
        starts_after: datetime | None = None,
        starts_before: datetime | None = None,
        parties: Iterable[str] | None = None,
    ) -> list[Ride]:
        wanted = set(statuses) if statuses is not None else None
        involved = set(parties) if parties is not None else None
        found = []
        for ride in self._rides.values():
            if driver_phone or rider_phone:
                if ride.driver_phone != driver_phone and ride.rider_phone != rider_phone:
                    continue
            if involved is not None and not involved & {ride.driver_phone, ride.rider_phone}:
                continue
            if wanted is not None and ride.status not in wanted:
                continue
            if starts_after is not None and ride.requested_time < starts_after:
                continue
            if starts_before is not None and ride.requested_time >= starts_before:
                continue
            found.append(ride.model_copy(deep=True))
        found.sort(key=lambda r: r.requested_time)
        return found

    async def last_accepted_for_driver(self, driver_phone: str) -> Optional[Ride]:
        accepted = [
            r for r in self._rides.values()
            if r.driver_phone == driver_phone and r.status == RideStatus.AUTO_ACCEPTED
        ]
        if not accepted:
            return None
        return max(accepted, key=lambda r: r.processed_at).model_copy(deep=True)

    async def count_by_status(self) -> dict[str, int]:
        return dict(Counter(r.status.value for r in self._rides.values()))


class InMemoryDriverStore(DriverStore):
    def __init__(self, drivers: Iterable[Driver] = ()) -> None:
        self._drivers: dict[str, Driver] = {d.phone: d.model_copy(deep=True) for d in drivers}

    async def get(self, phone: str) -> Optional[Driver]:
        driver = self._drivers.get(phone)
        return driver.model_copy(deep=True) if driver else None

    async def list_active(self) -> list[Driver]:
        return [d.model_copy(deep=True) for d in self._drivers.values() if d.is_active]

    async def save(self, driver: Driver) -> None:
        self._drivers[driver.phone] = driver.model_copy(deep=True)

    async def update_location(self, phone: str, location: DriverLocation) -> None:
        driver = self._drivers.get(phone)
        if driver is None:
            log.info("Adding driver %s to roster on location update", redact_pii(phone))
            driver = self._drivers[phone] = Driver(phone=phone)
        driver.current_location = location.model_copy()


class InMemoryRiderStore(RiderStore):
    def __init__(self) -> None:
        self._riders: dict[str, RiderStats] = {}

    async def get(self, phone: str) -> Optional[RiderStats]:
        stats = self._riders.get(phone)
        return stats.model_copy() if stats else None

    async def record_outcome(self, phone: str, accepted: bool, at: datetime) -> RiderStats:
        stats = self._riders.setdefault(phone, RiderStats(phone=phone))
        if accepted:
            stats.total_rides += 1
            stats.last_ride_at = at
        return stats.model_copy()


class InMemoryConversationStore(ConversationStore):
    def __init__(self, ttl_seconds: int | None = None) -> None:
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.conversation_ttl_seconds
        self._conversations: dict[str, Conversation] = {}

    async def get(self, phone: str, now: datetime) -> Optional[Conversation]:
        conversation = self._conversations.get(phone)
        if conversation is None:
            return None
        if conversation.is_active and conversation.is_expired(now, self._ttl):
            log.info("Conversation for %s expired, retiring", redact_pii(phone))
            conversation.retire()
        return conversation.model_copy(deep=True)

    async def save(self, conversation: Conversation) -> None:
        self._conversations[conversation.phone] = conversation.model_copy(deep=True)

    async def count_active(self, now: datetime) -> int:
        return sum(
            1 for c in self._conversations.values()
            if c.is_active and not c.is_expired(now, self._ttl)
        )
