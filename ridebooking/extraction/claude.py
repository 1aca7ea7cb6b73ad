"""Slot extraction with Claude.

The model reads the recent conversation and answers with one JSON object
describing the booking so far plus a classification of the rider's latest
turn. Output that does not parse is reported as a failed extraction and
never touches the slots already collected.
"""

from __future__ import annotations

import logging
from datetime import datetime

import anthropic

from ridebooking.config import settings
from ridebooking.models.conversation import HistoryEntry, RideSlots
from ridebooking.phone import is_valid_phone, normalize_phone
from ridebooking.timeutil import local_tz, now_utc, to_local

from .base import (
    ExtractionResult,
    ExtractionStatus,
    ResponseType,
    SlotExtractor,
    extract_json_block,
)

log = logging.getLogger("ridebooking.extraction")

HISTORY_WINDOW = 20

DEFAULT_CLARIFICATION = (
    "Could you tell me your pickup location, destination and preferred time?"
)

SYSTEM_PROMPT = """You extract ride booking details from a WhatsApp conversation.
Return ONLY one JSON object with these keys:
  "from": pickup location or null
  "to": destination or null
  "dateTime": pickup time as "YYYY-MM-DD HH:MM" in local time, or null
  "driverPhone": driver phone number or null
  "responseType": one of location_name, time, phone_number, confirmation,
      rejection, auto_assign_request, greeting, vague, invalid, other
      (classifies the user's LATEST message only)
  "needsClarification": true or false
  "clarificationMessage": short question to ask the user, or null

Rules:
- Preserve details mentioned earlier in the conversation unless the user
  explicitly changes that specific detail. Only use null for details that
  were never mentioned.
- Only set driverPhone when the user gave a phone number or clearly
  confirmed a suggested driver. Never derive it from a place name.
- Only future times. A time earlier today means tomorrow. Reject past dates
  ("yesterday") by asking for clarification.
- City-only locations, gibberish, and answers like "anywhere" or "idk"
  need clarification.
- Greetings and clear confirmations do not need clarification."""


class ClaudeSlotExtractor(SlotExtractor):
    """SlotExtractor backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        key = api_key or settings.anthropic_api_key
        if client is None and not key:
            raise ValueError("ANTHROPIC_API_KEY must be set for Claude slot extraction.")
        self._client = client or anthropic.AsyncAnthropic(api_key=key)
        self._model = model or settings.extraction_model

    def _render_prompt(self, history: list[HistoryEntry], now: datetime) -> str:
        local_now = to_local(now)
        lines = [f"{entry.role}: {entry.content}" for entry in history[-HISTORY_WINDOW:]]
        return (
            f"CURRENT TIME: {local_now.strftime('%A %d %B %Y, %H:%M')} "
            f"({settings.calendar_timezone})\n\n"
            "CONVERSATION:\n" + "\n".join(lines)
        )

    async def extract(self, phone: str, history: list[HistoryEntry]) -> ExtractionResult:
        now = now_utc()
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=settings.extraction_max_tokens,
                temperature=0.1,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": self._render_prompt(history, now)}],
            )
        except anthropic.APIError as e:
            log.warning("Extraction request failed: %s", e)
            return ExtractionResult.failed(str(e))

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        data = extract_json_block(text)
        if data is None:
            log.warning("Extraction output was not JSON: %s", text[:120])
            return ExtractionResult.failed("unparseable model output")
        return parse_extraction(data)


def _parse_datetime(value) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d %H:%M").replace(tzinfo=local_tz())
    except ValueError:
        return None


def _clean_text(value) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_extraction(data: dict) -> ExtractionResult:
    """Turn the model's JSON answer into a tagged ExtractionResult."""
    response_type = ResponseType.parse(data.get("responseType"))

    driver_phone = None
    raw_phone = _clean_text(data.get("driverPhone"))
    if raw_phone and response_type not in (ResponseType.LOCATION, ResponseType.OTHER):
        candidate = normalize_phone(raw_phone)
        if is_valid_phone(candidate):
            driver_phone = candidate

    slots = RideSlots(
        pickup=_clean_text(data.get("from")),
        destination=_clean_text(data.get("to")),
        time=_parse_datetime(data.get("dateTime")),
        driver_phone=driver_phone,
    )

    if data.get("needsClarification"):
        return ExtractionResult(
            status=ExtractionStatus.NEEDS_CLARIFICATION,
            slots=slots,
            response_type=response_type,
            clarification_message=_clean_text(data.get("clarificationMessage"))
            or DEFAULT_CLARIFICATION,
        )

    return ExtractionResult(
        status=ExtractionStatus.EXTRACTED,
        slots=slots,
        response_type=response_type,
    )
