"""Pydantic models for rides, conflicts and booking outcomes."""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ridebooking.models.window import TimeWindow
from ridebooking.phone import is_valid_phone, normalize_phone

MIN_DURATION_MINUTES = 5
MAX_DURATION_MINUTES = 480
DEFAULT_DURATION_MINUTES = 60

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_ride_id() -> str:
    """``ride_<epoch ms>_<9 random chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"ride_{int(time.time() * 1000)}_{suffix}"


class RideStatus(str, Enum):
    AUTO_ACCEPTED = "auto_accepted"
    AUTO_REJECTED = "auto_rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RejectionReason(str, Enum):
    DRIVER_CONFLICT = "driver_conflict"
    RIDER_CONFLICT = "rider_conflict"
    DRIVER_LOCATION = "driver_location"
    SYSTEM_ERROR = "system_error"


# Rides that occupy a driver's or rider's time.
BLOCKING_STATUSES = (RideStatus.AUTO_ACCEPTED, RideStatus.COMPLETED)


class ConflictParty(str, Enum):
    DRIVER = "driver"
    RIDER = "rider"
    BOTH = "both"


class ConflictSource(str, Enum):
    CALENDAR = "calendar"
    BOOKING = "existing_booking"


class ConflictRecord(BaseModel):
    """One overlapping calendar event or booking."""

    party: ConflictParty
    source: ConflictSource
    title: str
    start: datetime
    end: datetime
    reference_id: str = ""

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start, end=self.end)


class AlternativeDriver(BaseModel):
    driver_phone: str
    ride_count: int = 0
    rating: float = 0.0
    reason: str = ""


class SuggestedTime(BaseModel):
    time: str            # YYYY-MM-DD HH:MM, local
    display: str         # "Mar 05, 2026 at 2:30 PM"
    offset: int          # minutes from the requested time
    at: datetime


class ConflictResolution(BaseModel):
    """What the rider can do about a conflict-based rejection."""

    type: RejectionReason
    message: str
    suggestion: str = ""
    alternative_drivers: list[AlternativeDriver] = []
    suggested_times: list[SuggestedTime] = []

    @field_validator("type")
    @classmethod
    def _conflict_types_only(cls, value: RejectionReason) -> RejectionReason:
        if value not in (RejectionReason.DRIVER_CONFLICT, RejectionReason.RIDER_CONFLICT):
            raise ValueError("conflict resolution applies to driver or rider conflicts only")
        return value


class Ride(BaseModel):
    """One booking attempt and its decision. Serves as the audit record."""

    ride_id: str = Field(default_factory=new_ride_id)
    driver_phone: str
    rider_phone: str
    pickup: str
    destination: str
    requested_time: datetime
    estimated_duration: int = Field(
        DEFAULT_DURATION_MINUTES, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES
    )
    status: RideStatus
    rejection_reason: Optional[RejectionReason] = None
    conflict_details: list[ConflictRecord] = []
    conflict_summary: str = ""
    conflict_resolution: Optional[ConflictResolution] = None
    calendar_event_id: Optional[str] = None
    distance_km: Optional[float] = None
    processed_at: datetime

    @model_validator(mode="after")
    def _reason_iff_rejected(self) -> "Ride":
        rejected = self.status == RideStatus.AUTO_REJECTED
        if rejected != (self.rejection_reason is not None):
            raise ValueError("rejection_reason is set if and only if status is auto_rejected")
        if self.conflict_resolution is not None and self.rejection_reason not in (
            RejectionReason.DRIVER_CONFLICT,
            RejectionReason.RIDER_CONFLICT,
        ):
            raise ValueError("conflict_resolution requires a conflict rejection")
        return self

    @property
    def window(self) -> TimeWindow:
        return TimeWindow.starting_at(self.requested_time, self.estimated_duration)


class BookingRequest(BaseModel):
    """Validated input to the orchestrator."""

    driver_phone: str
    rider_phone: str
    pickup: str
    destination: str
    time: datetime
    estimated_duration: int = Field(
        DEFAULT_DURATION_MINUTES, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES
    )

    @field_validator("driver_phone", "rider_phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        phone = normalize_phone(value)
        if not is_valid_phone(phone):
            raise ValueError(f"invalid phone number: {value!r}")
        return phone

    @field_validator("pickup", "destination")
    @classmethod
    def _location(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("location is required")
        return value


class BookingOutcome(BaseModel):
    """Structured result of one ``BookingOrchestrator.book`` call."""

    success: bool
    ride_id: Optional[str] = None
    status: RideStatus
    rejection_reason: Optional[RejectionReason] = None
    conflict_resolution: Optional[ConflictResolution] = None
    calendar_event_id: Optional[str] = None
    conflicts: list[ConflictRecord] = []
    conflict_summary: str = ""
    distance_km: Optional[float] = None
    location_warning: Optional[str] = None
    message: str = ""
