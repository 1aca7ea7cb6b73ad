"""Distance and geocoding providers."""

from .base import DistanceProvider, DistanceResult, GeocodeResult

__all__ = ["DistanceProvider", "DistanceResult", "GeocodeResult"]
