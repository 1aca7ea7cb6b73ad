"""Tests for the in-memory and RAG-backed preference stores."""

import json

import httpx
import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ridebooking.preferences.memory import InMemoryPreferenceStore
from ridebooking.preferences.rag import RagPreferenceStore

RIDER = "+923331112222"
DRIVER = "+923001234567"
DRIVER_2 = "+923009876543"


class TestInMemoryPreferenceStore:
    @pytest.mark.asyncio
    async def test_counts_rides_per_driver(self):
        store = InMemoryPreferenceStore()
        await store.record_affinity(RIDER, DRIVER, "Gulberg", "Airport")
        await store.record_affinity(RIDER, DRIVER, "Gulberg", "DHA")
        await store.record_affinity(RIDER, DRIVER_2, "Gulberg", "Airport")

        found = await store.query_preferred_drivers(RIDER)

        assert [(p.driver_phone, p.ride_count) for p in found] == [(DRIVER, 2), (DRIVER_2, 1)]
        assert found[0].destinations == ["airport", "dha"]

    @pytest.mark.asyncio
    async def test_min_rides(self):
        store = InMemoryPreferenceStore()
        await store.record_affinity(RIDER, DRIVER, "Gulberg", "Airport")
        assert await store.query_preferred_drivers(RIDER, min_rides=2) == []

    @pytest.mark.asyncio
    async def test_destination_breaks_ties(self):
        store = InMemoryPreferenceStore()
        await store.record_affinity(RIDER, DRIVER, "Gulberg", "DHA")
        await store.record_affinity(RIDER, DRIVER_2, "Gulberg", "Airport")

        found = await store.query_preferred_drivers(RIDER, destination="Airport")
        assert found[0].driver_phone == DRIVER_2

    @pytest.mark.asyncio
    async def test_unknown_rider(self):
        assert await InMemoryPreferenceStore().query_preferred_drivers(RIDER) == []


class FakeRagService:
    """MockTransport handler imitating the RAG service's ingest/query API."""

    def __init__(self):
        self.documents: list[dict] = []
        self.queries: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if request.url.path == "/ingest":
            self.documents.append(body)
            return httpx.Response(200, json={"ok": True})
        if request.url.path == "/query":
            self.queries.append(body)
            rider = body["filter"]["rider_phone"]
            hits = [
                {"text": d["text"], "metadata": d["metadata"]}
                for d in self.documents
                if d["metadata"]["rider_phone"] == rider
            ]
            return httpx.Response(200, json={"results": hits})
        return httpx.Response(404)


def _rag(service):
    client = httpx.AsyncClient(transport=httpx.MockTransport(service))
    return RagPreferenceStore(base_url="http://rag.test/", client=client)


class TestRagPreferenceStore:
    def test_requires_url(self, monkeypatch):
        monkeypatch.setattr("ridebooking.preferences.rag.settings.rag_service_url", "")
        with pytest.raises(ValueError):
            RagPreferenceStore()

    @pytest.mark.asyncio
    async def test_ingest_then_query(self):
        service = FakeRagService()
        store = _rag(service)
        await store.record_affinity(RIDER, DRIVER, "Gulberg", "Airport")
        await store.record_affinity(RIDER, DRIVER, "Model Town", "Airport")
        await store.record_affinity("+923337778888", DRIVER_2, "Gulberg", "Airport")

        found = await store.query_preferred_drivers(RIDER, destination="Airport", min_rides=2)

        assert [(p.driver_phone, p.ride_count) for p in found] == [(DRIVER, 2)]
        assert service.documents[0]["metadata"]["kind"] == "ride_affinity"
        assert service.queries[0]["query"] == f"Ride for {RIDER} to Airport"

    @pytest.mark.asyncio
    async def test_service_error_raises(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        store = RagPreferenceStore(base_url="http://rag.test", client=client)

        with pytest.raises(httpx.HTTPStatusError):
            await store.query_preferred_drivers(RIDER)
