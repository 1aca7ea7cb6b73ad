"""Data models for the booking engine."""

from .conversation import Conversation, ConversationStep, HistoryEntry, RideSlots
from .driver import Driver, DriverLocation, RiderStats, ServiceArea
from .ride import (
    BookingOutcome,
    BookingRequest,
    ConflictParty,
    ConflictRecord,
    ConflictResolution,
    ConflictSource,
    RejectionReason,
    Ride,
    RideStatus,
)
from .window import TimeWindow

__all__ = [
    "BookingOutcome",
    "BookingRequest",
    "ConflictParty",
    "ConflictRecord",
    "ConflictResolution",
    "ConflictSource",
    "Conversation",
    "ConversationStep",
    "Driver",
    "DriverLocation",
    "HistoryEntry",
    "RejectionReason",
    "Ride",
    "RideSlots",
    "RideStatus",
    "RiderStats",
    "ServiceArea",
    "TimeWindow",
]
