"""Abstract base class for calendar providers.

Defines the interface for listing events in a window and inserting
ride events. Any calendar backend (Google, Outlook, etc.) implements
this ABC.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from ridebooking.models.window import TimeWindow


@dataclass
class CalendarEvent:
    """A calendar event, either read from or written to a calendar."""

    summary: str
    start: datetime
    end: datetime
    description: str = ""
    location: str = ""
    event_id: str = ""
    attendees: list[str] = field(default_factory=list)  # email addresses
    reminders: list[tuple[str, int]] = field(default_factory=list)  # (method, minutes)

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start, end=self.end)

    @property
    def text(self) -> str:
        """Summary and description, lower-cased, for participant matching."""
        return f"{self.summary} {self.description}".lower()


class CalendarProvider(ABC):
    """Abstract calendar backend."""

    @abstractmethod
    async def list_events(
        self, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]:
        """Return events intersecting ``[time_min, time_max)``.

        Args:
            calendar_id: The calendar to query.
            time_min: Beginning of the search window.
            time_max: End of the search window.
        """

    @abstractmethod
    async def insert_event(self, calendar_id: str, event: CalendarEvent) -> str:
        """Create a calendar event and return its provider-specific id."""
