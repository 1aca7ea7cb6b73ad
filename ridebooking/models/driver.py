"""Pydantic models for the driver roster and rider aggregates."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class DriverLocation(BaseModel):
    """Last known position of a driver."""

    address: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    last_updated: datetime


class ServiceArea(BaseModel):
    """Per-driver pickup caps. ``None`` falls back to the global setting."""

    max_distance_km: Optional[float] = None
    max_duration_minutes: Optional[float] = None


class CalendarIntegration(BaseModel):
    enabled: bool = True
    calendar_id: str = ""
    last_sync: Optional[datetime] = None


class VehicleDetails(BaseModel):
    make: str = ""
    model: str = ""
    year: Optional[int] = None
    color: str = ""
    plate_number: str = ""


class Driver(BaseModel):
    """A driver on the fleet roster, keyed by phone."""

    phone: str
    name: str = ""
    license_number: str = ""
    vehicle: Optional[VehicleDetails] = None
    is_active: bool = True
    rating: float = Field(5.0, ge=0, le=5)
    total_rides: int = Field(0, ge=0)
    current_location: Optional[DriverLocation] = None
    working_hours_start: str = "08:00"
    working_hours_end: str = "20:00"
    working_days: list[str] = [
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday",
    ]
    service_area: ServiceArea = Field(default_factory=ServiceArea)
    calendar: CalendarIntegration = Field(default_factory=CalendarIntegration)


class RiderStats(BaseModel):
    phone: str
    total_rides: int = 0
    last_ride_at: Optional[datetime] = None
