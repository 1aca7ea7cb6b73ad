"""Abstract stores for rides, drivers, riders and conversations.

Stores hand out copies: a record changed by the caller is only persisted
when it is passed back to ``save``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from ridebooking.models.conversation import Conversation
from ridebooking.models.driver import Driver, DriverLocation, RiderStats
from ridebooking.models.ride import Ride, RideStatus


class RideStore(ABC):
    @abstractmethod
    async def save(self, ride: Ride) -> None:
        """Insert or replace a ride by ``ride_id``."""

    @abstractmethod
    async def get(self, ride_id: str) -> Optional[Ride]:
        ...

    @abstractmethod
    async def find(
        self,
        driver_phone: str | None = None,
        rider_phone: str | None = None,
        statuses: Iterable[RideStatus] | None = None,
        starts_after: datetime | None = None,
        starts_before: datetime | None = None,
        parties: Iterable[str] | None = None,
    ) -> list[Ride]:
        """Rides matching every given filter, ordered by requested time.

        When both phones are given a ride matches if it involves either.
        ``parties`` matches a ride whose driver or rider is any of the
        given phones, whichever role they had.
        """

    @abstractmethod
    async def last_accepted_for_driver(self, driver_phone: str) -> Optional[Ride]:
        """The most recently processed accepted ride for a driver."""

    @abstractmethod
    async def count_by_status(self) -> dict[str, int]:
        ...


class DriverStore(ABC):
    @abstractmethod
    async def get(self, phone: str) -> Optional[Driver]:
        ...

    @abstractmethod
    async def list_active(self) -> list[Driver]:
        ...

    @abstractmethod
    async def save(self, driver: Driver) -> None:
        ...

    @abstractmethod
    async def update_location(self, phone: str, location: DriverLocation) -> None:
        """Set a driver's tracked location, creating a roster entry if needed."""


class RiderStore(ABC):
    @abstractmethod
    async def get(self, phone: str) -> Optional[RiderStats]:
        ...

    @abstractmethod
    async def record_outcome(self, phone: str, accepted: bool, at: datetime) -> RiderStats:
        """Upsert the rider; count the ride and stamp ``last_ride_at`` only when accepted."""


class ConversationStore(ABC):
    @abstractmethod
    async def get(self, phone: str, now: datetime) -> Optional[Conversation]:
        """The rider's conversation record.

        A record idle past the time-to-live is retired before it is returned.
        """

    @abstractmethod
    async def save(self, conversation: Conversation) -> None:
        ...

    @abstractmethod
    async def count_active(self, now: datetime) -> int:
        ...
