"""In-process fakes for the external collaborators used across the tests."""

from datetime import datetime, timedelta, timezone

from ridebooking.calendar_providers.base import CalendarEvent, CalendarProvider
from ridebooking.channels.base import LoggingChannel
from ridebooking.extraction.base import ExtractionResult, SlotExtractor
from ridebooking.maps.base import DistanceProvider, DistanceResult, GeocodeResult
from ridebooking.timeutil import local_tz

# 11:00 local time (Asia/Karachi, UTC+5)
NOW = datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc)

DRIVER = "+923001234567"
DRIVER_2 = "+923009876543"
DRIVER_3 = "+923005550000"
RIDER = "+923331112222"
RIDER_2 = "+923337778888"


def local(hour: int, minute: int = 0, days: int = 0) -> datetime:
    """A local wall-clock time on the test day (plus ``days``)."""
    base = datetime(2026, 3, 10, hour, minute, tzinfo=local_tz())
    return base + timedelta(days=days)


class FakeCalendar(CalendarProvider):
    def __init__(self, events=None, error: Exception | None = None, insert_error: Exception | None = None):
        self.events = list(events or [])
        self.error = error
        self.insert_error = insert_error
        self.inserted: list[CalendarEvent] = []

    async def list_events(self, calendar_id, time_min, time_max):
        if self.error:
            raise self.error
        return [e for e in self.events if e.start < time_max and e.end > time_min]

    async def insert_event(self, calendar_id, event):
        if self.insert_error:
            raise self.insert_error
        self.inserted.append(event)
        return f"evt_{len(self.inserted)}"


class FakeMaps(DistanceProvider):
    """Distances keyed by (origin, destination); anything else gets ``default``.

    ``geocode`` answers from ``places`` and otherwise echoes the text back.
    """

    def __init__(
        self,
        distances=None,
        default: DistanceResult | None = None,
        error: Exception | None = None,
        places=None,
    ):
        self.distances = dict(distances or {})
        self.default = default
        self.error = error
        self.places = dict(places or {})
        self.calls: list[tuple[str, str]] = []

    async def distance_duration(self, origin, destination):
        self.calls.append((origin, destination))
        if self.error:
            raise self.error
        return self.distances.get((origin, destination), self.default)

    async def geocode(self, text):
        if self.error:
            raise self.error
        return self.places.get(text, GeocodeResult(formatted_address=text))

    async def reverse_geocode(self, lat, lng):
        return GeocodeResult(formatted_address="Liberty Market, Lahore", lat=lat, lng=lng)


class ScriptedExtractor(SlotExtractor):
    """Returns queued results in order; records the history it was shown."""

    def __init__(self, *results: ExtractionResult):
        self.results = list(results)
        self.seen: list[list] = []

    async def extract(self, phone, history):
        self.seen.append(list(history))
        if not self.results:
            return ExtractionResult.failed("no scripted result")
        return self.results.pop(0)


class RecordingChannel(LoggingChannel):
    def to(self, phone: str) -> list[str]:
        return [text for dest, text in self.sent if dest == phone]
