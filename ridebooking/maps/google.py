"""Google Maps provider: Distance Matrix and Geocoding over HTTP."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ridebooking.config import settings

from .base import DistanceProvider, DistanceResult, GeocodeResult

log = logging.getLogger("ridebooking.maps")

MAPS_BASE_URL = "https://maps.googleapis.com/maps/api"


class GoogleMapsProvider(DistanceProvider):
    """DistanceProvider backed by the Google Maps web services."""

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        base_url: str = MAPS_BASE_URL,
    ) -> None:
        self._api_key = api_key or settings.google_maps_api_key
        if not self._api_key:
            raise ValueError(
                "Google Maps API key must be provided via constructor "
                "argument or GOOGLE_MAPS_API_KEY."
            )
        self._client = client or httpx.AsyncClient(timeout=15)
        self._base_url = base_url.rstrip("/")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict | None:
        params = {**params, "key": self._api_key}
        try:
            resp = await self._client.get(f"{self._base_url}/{endpoint}/json", params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            log.warning("Maps %s request failed: %s", endpoint, e)
            return None

        status = data.get("status", "")
        if status not in ("OK", "ZERO_RESULTS"):
            log.warning("Maps %s returned status %s", endpoint, status)
            return None
        return data

    async def distance_duration(self, origin: str, destination: str) -> DistanceResult | None:
        data = await self._get(
            "distancematrix",
            {"origins": origin, "destinations": destination, "units": "metric"},
        )
        if data is None:
            return None

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError):
            log.warning("Maps distancematrix returned no elements")
            return None
        if element.get("status") != "OK":
            log.info(
                "No route from %r to %r (%s)", origin, destination, element.get("status")
            )
            return None

        return DistanceResult(
            km=element["distance"]["value"] / 1000,
            minutes=element["duration"]["value"] / 60,
        )

    @staticmethod
    def _to_geocode(result: dict) -> GeocodeResult:
        location = result.get("geometry", {}).get("location", {})
        return GeocodeResult(
            formatted_address=result.get("formatted_address", ""),
            lat=location.get("lat"),
            lng=location.get("lng"),
            types=list(result.get("types", [])),
            place_id=result.get("place_id", ""),
        )

    async def geocode(self, text: str) -> GeocodeResult | None:
        data = await self._get(
            "geocode", {"address": text, "region": settings.maps_region, "language": "en"}
        )
        if data is None:
            return None
        if not data.get("results"):
            return GeocodeResult(formatted_address="")
        return self._to_geocode(data["results"][0])

    async def reverse_geocode(self, lat: float, lng: float) -> GeocodeResult | None:
        data = await self._get("geocode", {"latlng": f"{lat},{lng}", "language": "en"})
        if not data or not data.get("results"):
            return None
        return self._to_geocode(data["results"][0])
