"""Exception types raised at the booking boundary."""

from __future__ import annotations


class BookingError(Exception):
    """Base class for booking errors."""


class BookingValidationError(BookingError):
    """Malformed input rejected before any side effect runs."""

    def __init__(self, message: str, field: str = "") -> None:
        super().__init__(message)
        self.field = field


class TimeParseError(BookingError):
    """A free-text time could not be turned into a pickup time.

    The message is written for the rider and is sent back verbatim.
    """
