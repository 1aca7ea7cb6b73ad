"""Abstract base class for distance / geocoding providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class DistanceResult:
    """Driving distance and travel time between two places."""

    km: float
    minutes: float


@dataclass
class GeocodeResult:
    formatted_address: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    types: list[str] = field(default_factory=list)
    place_id: str = ""

    @property
    def found(self) -> bool:
        """False when the service answered but knows no such place."""
        return bool(self.formatted_address)


class DistanceProvider(ABC):
    """Abstract distance/geocoding backend.

    Implementations return ``None`` when the service cannot answer
    (unknown place, quota, network error). Callers treat ``None`` as
    "distance unavailable".
    """

    @abstractmethod
    async def distance_duration(self, origin: str, destination: str) -> DistanceResult | None:
        """Driving distance and duration from ``origin`` to ``destination``."""

    @abstractmethod
    async def geocode(self, text: str) -> GeocodeResult | None:
        """Resolve free text to an address.

        An unknown place comes back as a result whose ``found`` is False;
        ``None`` still means the service could not answer.
        """

    @abstractmethod
    async def reverse_geocode(self, lat: float, lng: float) -> GeocodeResult | None:
        """Resolve coordinates to an address."""
