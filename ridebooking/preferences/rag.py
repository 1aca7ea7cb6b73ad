"""Preference store backed by the RAG service.

Each accepted ride is ingested as a small document; preferred drivers are
recovered by querying the rider's documents and counting per driver.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict

import httpx

from ridebooking.config import settings

from .base import PreferenceStore, PreferredDriver

log = logging.getLogger("ridebooking.preferences")

QUERY_TOP_K = 50


class RagPreferenceStore(PreferenceStore):
    def __init__(self, base_url: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._base_url = (base_url or settings.rag_service_url).rstrip("/")
        if not self._base_url:
            raise ValueError("RAG_SERVICE_URL must be set for the RAG preference store.")
        self._client = client or httpx.AsyncClient(timeout=15)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def record_affinity(
        self, rider_phone: str, driver_phone: str, pickup: str, destination: str
    ) -> None:
        payload = {
            "text": f"Ride for {rider_phone} with driver {driver_phone} from {pickup} to {destination}",
            "metadata": {
                "kind": "ride_affinity",
                "rider_phone": rider_phone,
                "driver_phone": driver_phone,
                "pickup": pickup,
                "destination": destination,
            },
        }
        resp = await self._client.post(f"{self._base_url}/ingest", json=payload)
        resp.raise_for_status()

    async def query_preferred_drivers(
        self, rider_phone: str, destination: str | None = None, min_rides: int = 1
    ) -> list[PreferredDriver]:
        query = f"Ride for {rider_phone}"
        if destination:
            query += f" to {destination}"
        resp = await self._client.post(
            f"{self._base_url}/query",
            json={
                "query": query,
                "top_k": QUERY_TOP_K,
                "filter": {"kind": "ride_affinity", "rider_phone": rider_phone},
            },
        )
        resp.raise_for_status()

        counts: Counter[str] = Counter()
        dests: dict[str, list[str]] = defaultdict(list)
        for hit in resp.json().get("results", []):
            meta = hit.get("metadata", {})
            if meta.get("rider_phone") != rider_phone or not meta.get("driver_phone"):
                continue
            counts[meta["driver_phone"]] += 1
            dests[meta["driver_phone"]].append(meta.get("destination", "").strip().lower())

        wanted = (destination or "").strip().lower()
        found = [
            PreferredDriver(driver_phone=driver, ride_count=count, destinations=dests[driver])
            for driver, count in counts.items()
            if count >= min_rides
        ]
        found.sort(
            key=lambda p: (p.ride_count, bool(wanted) and wanted in p.destinations),
            reverse=True,
        )
        log.debug("Preferred drivers for %s: %d", rider_phone[-4:], len(found))
        return found
