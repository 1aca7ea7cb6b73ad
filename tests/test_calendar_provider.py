"""Tests for CalendarProvider ABC and GoogleCalendarProvider."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ridebooking.calendar_providers.base import CalendarEvent, CalendarProvider


# ── CalendarEvent dataclass tests ───────────────────────────────────


class TestCalendarEvent:
    def test_defaults(self):
        now = datetime.now(tz=timezone.utc)
        event = CalendarEvent(
            summary="Test",
            start=now,
            end=now + timedelta(minutes=30),
        )
        assert event.description == ""
        assert event.attendees == []
        assert event.reminders == []

    def test_window(self):
        now = datetime.now(tz=timezone.utc)
        event = CalendarEvent(summary="Ride", start=now, end=now + timedelta(hours=1))
        assert event.window.duration_minutes == 60

    def test_text_is_lowercase(self):
        now = datetime.now(tz=timezone.utc)
        event = CalendarEvent(
            summary="Ride for ALI",
            description="Driver 03001234567",
            start=now,
            end=now + timedelta(minutes=30),
        )
        assert event.text == "ride for ali driver 03001234567"


# ── ABC contract tests ─────────────────────────────────────────────


class TestCalendarProviderABC:
    def test_cannot_instantiate(self):
        """CalendarProvider is abstract and can't be instantiated directly."""
        with pytest.raises(TypeError):
            CalendarProvider()

    def test_concrete_implementation(self):
        class MockProvider(CalendarProvider):
            async def list_events(self, calendar_id, time_min, time_max):
                return []
            async def insert_event(self, calendar_id, event):
                return "evt"

        provider = MockProvider()
        assert isinstance(provider, CalendarProvider)


# ── GoogleCalendarProvider tests (mocked API) ──────────────────────


class TestGoogleCalendarProvider:
    @pytest.fixture
    def mock_provider(self):
        """Create a GoogleCalendarProvider with mocked Google APIs."""
        with patch(
            "ridebooking.calendar_providers.google.Credentials"
        ) as mock_creds, patch(
            "ridebooking.calendar_providers.google.build"
        ) as mock_build:
            mock_creds.from_service_account_file.return_value = MagicMock()

            from ridebooking.calendar_providers.google import GoogleCalendarProvider

            provider = GoogleCalendarProvider(
                service_account_path="/fake/path.json", time_zone="Asia/Karachi"
            )
            provider._service = mock_build.return_value
            return provider

    def test_requires_service_account(self, monkeypatch):
        from ridebooking.calendar_providers.google import GoogleCalendarProvider

        monkeypatch.setattr(
            "ridebooking.calendar_providers.google.settings.google_service_account_json", ""
        )
        with pytest.raises(ValueError):
            GoogleCalendarProvider()

    @pytest.mark.asyncio
    async def test_list_events(self, mock_provider):
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        end = datetime(2026, 3, 15, 18, 0, tzinfo=timezone.utc)

        mock_provider._service.events.return_value.list.return_value.execute.return_value = {
            "items": [
                {
                    "id": "evt_1",
                    "summary": "Ride: Gulberg to Airport",
                    "description": "Driver: +923001234567",
                    "start": {"dateTime": "2026-03-15T10:00:00+05:00"},
                    "end": {"dateTime": "2026-03-15T11:00:00+05:00"},
                },
                {
                    "id": "evt_2",
                    "summary": "Holiday",
                    "start": {"date": "2026-03-15"},
                    "end": {"date": "2026-03-16"},
                },
                {"id": "evt_3", "summary": "Broken", "start": {}, "end": {}},
            ]
        }

        events = await mock_provider.list_events("primary", start, end)

        assert [e.event_id for e in events] == ["evt_1", "evt_2"]
        assert events[0].start == datetime(2026, 3, 15, 5, 0, tzinfo=timezone.utc)
        assert events[0].description == "Driver: +923001234567"
        assert events[1].start == datetime(2026, 3, 15, tzinfo=timezone.utc)

        kwargs = mock_provider._service.events.return_value.list.call_args.kwargs
        assert kwargs["calendarId"] == "primary"
        assert kwargs["singleEvents"] is True
        assert kwargs["timeMin"] == "2026-03-15T09:00:00+00:00"

    @pytest.mark.asyncio
    async def test_list_events_reads_every_page(self, mock_provider):
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        list_call = mock_provider._service.events.return_value.list
        list_call.return_value.execute.side_effect = [
            {
                "items": [{"id": "evt_1", "start": {"date": "2026-03-15"}, "end": {"date": "2026-03-16"}}],
                "nextPageToken": "page_2",
            },
            {
                "items": [{"id": "evt_2", "start": {"date": "2026-03-15"}, "end": {"date": "2026-03-16"}}],
            },
        ]

        events = await mock_provider.list_events("primary", start, start + timedelta(hours=9))

        assert [e.event_id for e in events] == ["evt_1", "evt_2"]
        assert "pageToken" not in list_call.call_args_list[0].kwargs
        assert list_call.call_args_list[1].kwargs["pageToken"] == "page_2"

    @pytest.mark.asyncio
    async def test_list_events_empty(self, mock_provider):
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        mock_provider._service.events.return_value.list.return_value.execute.return_value = {}

        assert await mock_provider.list_events("primary", start, start + timedelta(hours=1)) == []

    @pytest.mark.asyncio
    async def test_insert_event(self, mock_provider):
        """insert_event should call events().insert() and return the event id."""
        now = datetime(2026, 3, 15, 14, 0, tzinfo=timezone.utc)
        event = CalendarEvent(
            summary="Ride: Gulberg to Airport",
            start=now,
            end=now + timedelta(minutes=45),
            description="Rider: +923331112222",
            location="Gulberg",
            reminders=[("popup", 15), ("email", 30)],
        )

        mock_provider._service.events.return_value.insert.return_value.execute.return_value = {
            "id": "evt_123",
            "status": "confirmed",
        }

        event_id = await mock_provider.insert_event("primary", event)

        assert event_id == "evt_123"
        kwargs = mock_provider._service.events.return_value.insert.call_args.kwargs
        body = kwargs["body"]
        assert body["start"] == {"dateTime": "2026-03-15T14:00:00+00:00", "timeZone": "Asia/Karachi"}
        assert body["location"] == "Gulberg"
        assert body["reminders"]["useDefault"] is False
        assert body["reminders"]["overrides"][1] == {"method": "email", "minutes": 30}
        assert "attendees" not in body
        assert kwargs["sendUpdates"] == "none"

    @pytest.mark.asyncio
    async def test_insert_event_failure_propagates(self, mock_provider):
        now = datetime(2026, 3, 15, 14, 0, tzinfo=timezone.utc)
        event = CalendarEvent(summary="Ride", start=now, end=now + timedelta(minutes=30))
        mock_provider._service.events.return_value.insert.return_value.execute.side_effect = Exception(
            "quota exceeded"
        )

        with pytest.raises(Exception, match="quota"):
            await mock_provider.insert_event("primary", event)
