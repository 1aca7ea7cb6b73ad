"""Slot extraction interface and its tagged result type."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from ridebooking.models.conversation import HistoryEntry, RideSlots


class ResponseType(str, Enum):
    """How the extractor classified the rider's latest turn."""

    LOCATION = "location_name"
    TIME = "time"
    PHONE = "phone_number"
    CONFIRMATION = "confirmation"
    REJECTION = "rejection"
    AUTO_ASSIGN_REQUEST = "auto_assign_request"
    GREETING = "greeting"
    VAGUE = "vague"
    INVALID = "invalid"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> "ResponseType":
        try:
            return cls(value or "other")
        except ValueError:
            return cls.OTHER


class ExtractionStatus(str, Enum):
    EXTRACTED = "extracted"
    NEEDS_CLARIFICATION = "needs_clarification"
    FAILED = "failed"


@dataclass
class ExtractionResult:
    status: ExtractionStatus
    slots: RideSlots = field(default_factory=RideSlots)
    response_type: ResponseType = ResponseType.OTHER
    clarification_message: str = ""
    error: str = ""

    @classmethod
    def failed(cls, error: str) -> "ExtractionResult":
        return cls(status=ExtractionStatus.FAILED, error=error)


class SlotExtractor(ABC):
    @abstractmethod
    async def extract(self, phone: str, history: list[HistoryEntry]) -> ExtractionResult:
        """Read the conversation so far and return the booking slots it states.

        Implementations never raise for bad model output; they return a
        result tagged ``FAILED`` instead.
        """


def extract_json_block(text: str) -> dict | None:
    """Pull a JSON object out of model output.

    Accepts a fenced ```json block, a bare JSON line, or a whole-text object.
    Returns the parsed dict, or None if nothing parses.
    """
    pattern = r"```(?:json)?\s*\n?({.*?})\s*\n?```"
    match = re.search(pattern, text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    for line in text.split("\n"):
        line = line.strip()
        if line.startswith("{") and line.endswith("}"):
            try:
                return json.loads(line)
            except json.JSONDecodeError:
                continue

    stripped = text.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return None
    return None
