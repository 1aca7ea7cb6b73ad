"""Pydantic models tracking one rider's booking conversation."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ridebooking.models.ride import AlternativeDriver, SuggestedTime


class ConversationStep(str, Enum):
    WAITING_FOR_FROM = "waiting_for_from"
    WAITING_FOR_TO = "waiting_for_to"
    WAITING_FOR_TIME = "waiting_for_time"
    WAITING_FOR_DRIVER = "waiting_for_driver"
    WAITING_FOR_ALTERNATIVE_DRIVER = "waiting_for_alternative_driver"
    WAITING_FOR_ALTERNATIVE_TIME = "waiting_for_alternative_time"
    COMPLETED = "completed"
    AI_MANAGED = "ai_managed"


class RideSlots(BaseModel):
    """The booking fields collected so far. ``None`` means not yet given."""

    pickup: Optional[str] = None
    destination: Optional[str] = None
    time: Optional[datetime] = None
    driver_phone: Optional[str] = None
    estimated_duration: Optional[int] = None
    distance_km: Optional[float] = None

    @property
    def has_trip(self) -> bool:
        """Pickup, destination and time are known; the driver may be pending."""
        return bool(self.pickup and self.destination and self.time)

    def missing(self) -> list[str]:
        return [
            name
            for name in ("pickup", "destination", "time")
            if getattr(self, name) in (None, "")
        ]

    def merged(self, update: "RideSlots") -> "RideSlots":
        """Field-by-field merge: values present in ``update`` win, others are kept."""
        data = self.model_dump()
        for key, value in update.model_dump().items():
            if value not in (None, ""):
                data[key] = value
        return RideSlots(**data)


class HistoryEntry(BaseModel):
    role: str  # "user" or "assistant"
    content: str
    timestamp: datetime
    metadata: dict[str, Any] = {}


class Conversation(BaseModel):
    """Mutable per-phone conversation record.

    Retiring a conversation clears its slots, history and branch data but
    keeps the phone-linked record so the next message continues it.
    """

    phone: str
    step: ConversationStep = ConversationStep.WAITING_FOR_FROM
    slots: RideSlots = Field(default_factory=RideSlots)
    history: list[HistoryEntry] = []
    ai_enabled: bool = True
    last_valid_context: Optional[RideSlots] = None
    last_message_at: datetime
    is_active: bool = True

    # Driver choice dialogue (AI mode)
    pending_driver_choice: bool = False
    suggested_driver: Optional[str] = None

    # Conflict branches
    rejected_ride_id: Optional[str] = None
    alternative_drivers: list[AlternativeDriver] = []
    suggested_times: list[SuggestedTime] = []

    def add_message(
        self,
        role: str,
        content: str,
        now: datetime,
        limit: int = 20,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append a turn, evicting the oldest entries beyond ``limit``."""
        self.history.append(
            HistoryEntry(role=role, content=content, timestamp=now, metadata=metadata or {})
        )
        if len(self.history) > limit:
            self.history = self.history[-limit:]
        self.last_message_at = now

    def is_expired(self, now: datetime, ttl_seconds: int) -> bool:
        return now - self.last_message_at > timedelta(seconds=ttl_seconds)

    def initial_step(self) -> ConversationStep:
        return ConversationStep.AI_MANAGED if self.ai_enabled else ConversationStep.WAITING_FOR_FROM

    def restore_context(self) -> None:
        """Roll the slots back to the last set a turn validated, if any."""
        if self.last_valid_context is not None:
            self.slots = self.last_valid_context.model_copy()

    def retire(self, step: ConversationStep | None = None) -> None:
        self.step = step or self.initial_step()
        self.slots = RideSlots()
        self.history = []
        self.last_valid_context = None
        self.pending_driver_choice = False
        self.suggested_driver = None
        self.rejected_ride_id = None
        self.alternative_drivers = []
        self.suggested_times = []
        self.is_active = False
