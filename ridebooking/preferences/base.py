"""Abstract preference store: which drivers a rider keeps coming back to."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class PreferredDriver:
    driver_phone: str
    ride_count: int
    destinations: list[str]


class PreferenceStore(ABC):
    @abstractmethod
    async def record_affinity(
        self, rider_phone: str, driver_phone: str, pickup: str, destination: str
    ) -> None:
        """Record one completed pairing of rider and driver."""

    @abstractmethod
    async def query_preferred_drivers(
        self, rider_phone: str, destination: str | None = None, min_rides: int = 1
    ) -> list[PreferredDriver]:
        """Drivers with at least ``min_rides`` rides for this rider, most used first.

        When ``destination`` is given, drivers who served that destination
        rank ahead of the others with the same count.
        """
