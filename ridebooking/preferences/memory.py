"""In-process preference store."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from .base import PreferenceStore, PreferredDriver


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self) -> None:
        # rider -> driver -> destinations served (one entry per ride)
        self._rides: dict[str, dict[str, list[str]]] = defaultdict(lambda: defaultdict(list))
        self._lock = asyncio.Lock()

    async def record_affinity(
        self, rider_phone: str, driver_phone: str, pickup: str, destination: str
    ) -> None:
        async with self._lock:
            self._rides[rider_phone][driver_phone].append(destination.strip().lower())

    async def query_preferred_drivers(
        self, rider_phone: str, destination: str | None = None, min_rides: int = 1
    ) -> list[PreferredDriver]:
        wanted = (destination or "").strip().lower()
        found = [
            PreferredDriver(driver_phone=driver, ride_count=len(dests), destinations=list(dests))
            for driver, dests in self._rides.get(rider_phone, {}).items()
            if len(dests) >= min_rides
        ]
        found.sort(
            key=lambda p: (p.ride_count, bool(wanted) and wanted in p.destinations),
            reverse=True,
        )
        return found
