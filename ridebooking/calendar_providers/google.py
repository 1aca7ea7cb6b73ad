"""Driver calendars on Google Calendar v3.

Each driver's rides live on a calendar shared with a single service
account (``GOOGLE_SERVICE_ACCOUNT_JSON``). The Google client is blocking,
so every request runs on the loop's default executor.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

from ridebooking.config import settings

from .base import CalendarEvent, CalendarProvider

logger = logging.getLogger(__name__)

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"


def _stamp(moment: datetime) -> str:
    # Calendar rejects naive timestamps; treat them as UTC
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


def _read_boundary(boundary: dict) -> datetime | None:
    raw = boundary.get("dateTime") or boundary.get("date")
    if not raw:
        return None
    moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def _event_from_item(item: dict) -> CalendarEvent | None:
    start = _read_boundary(item.get("start", {}))
    end = _read_boundary(item.get("end", {}))
    if start is None or end is None:
        return None
    return CalendarEvent(
        summary=item.get("summary", ""),
        start=start,
        end=end,
        description=item.get("description", ""),
        location=item.get("location", ""),
        event_id=item.get("id", ""),
    )


class GoogleCalendarProvider(CalendarProvider):
    """Reads busy time from and writes ride events to Google Calendar."""

    def __init__(
        self,
        service_account_path: str | None = None,
        time_zone: str | None = None,
    ) -> None:
        key_file = service_account_path or settings.google_service_account_json
        if not key_file:
            raise ValueError(
                "No Google service account key: pass service_account_path "
                "or set GOOGLE_SERVICE_ACCOUNT_JSON."
            )
        self._time_zone = time_zone or settings.calendar_timezone
        credentials = Credentials.from_service_account_file(
            key_file, scopes=[CALENDAR_SCOPE]
        )
        self._service = build(
            "calendar", "v3", credentials=credentials, cache_discovery=False
        )

    async def _execute(self, request) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(request.execute))

    def _ride_body(self, event: CalendarEvent) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": event.summary,
            "start": {"dateTime": _stamp(event.start), "timeZone": self._time_zone},
            "end": {"dateTime": _stamp(event.end), "timeZone": self._time_zone},
        }
        for key in ("description", "location"):
            value = getattr(event, key)
            if value:
                body[key] = value
        if event.attendees:
            body["attendees"] = [{"email": email} for email in event.attendees]
        if event.reminders:
            overrides = [{"method": m, "minutes": mins} for m, mins in event.reminders]
            body["reminders"] = {"useDefault": False, "overrides": overrides}
        return body

    async def list_events(
        self, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]:
        """Recurring events come back expanded, ordered by start.

        Follows ``nextPageToken`` until every page has been read.
        """
        events = []
        page_token = None
        while True:
            params: dict[str, Any] = {
                "calendarId": calendar_id,
                "timeMin": _stamp(time_min),
                "timeMax": _stamp(time_max),
                "singleEvents": True,
                "orderBy": "startTime",
            }
            if page_token:
                params["pageToken"] = page_token
            response = await self._execute(self._service.events().list(**params))

            for item in response.get("items", []):
                event = _event_from_item(item)
                if event is None:
                    logger.debug("Skipping event %s without start/end", item.get("id"))
                    continue
                events.append(event)

            page_token = response.get("nextPageToken")
            if not page_token:
                return events

    async def insert_event(self, calendar_id: str, event: CalendarEvent) -> str:
        request = self._service.events().insert(
            calendarId=calendar_id,
            body=self._ride_body(event),
            sendUpdates="all" if event.attendees else "none",
        )
        created = await self._execute(request)
        logger.info("Ride event %s written to calendar %s", created["id"], calendar_id)
        return created["id"]
