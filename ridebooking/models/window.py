"""Half-open time windows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class TimeWindow:
    """The interval ``[start, end)``.

    A window ending exactly when another begins does not overlap it.
    """

    start: datetime
    end: datetime

    @classmethod
    def starting_at(cls, start: datetime, minutes: int) -> "TimeWindow":
        return cls(start=start, end=start + timedelta(minutes=minutes))

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and other.start < self.end

    def padded(self, minutes: int) -> "TimeWindow":
        pad = timedelta(minutes=minutes)
        return TimeWindow(start=self.start - pad, end=self.end + pad)

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60
