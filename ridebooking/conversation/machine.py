"""Conversation state machine for booking rides over text messages.

Each rider phone owns one Conversation. A turn runs under a per-phone lock:

  1. load the conversation (expired ones come back retired)
  2. global commands: restart, help, AI on/off
  3. conflict branches (alternative driver / time) are always step-driven
  4. otherwise step mode walks the JSONL workflow, AI mode merges
     extracted slots and books once pickup, destination and time are known

Bookings go through the orchestrator with ``notify_rider=False``; the
outcome message is the reply. An accepted booking retires the conversation.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ridebooking.config import settings
from ridebooking.conversation import responses
from ridebooking.conversation.commands import Command, detect_command, help_text
from ridebooking.conversation.timeparse import parse_time_input
from ridebooking.engine.notifications import generate_alternative_times
from ridebooking.engine.orchestrator import BookingOrchestrator
from ridebooking.errors import BookingValidationError, TimeParseError
from ridebooking.external import call_external
from ridebooking.extraction.base import (
    ExtractionResult,
    ExtractionStatus,
    ResponseType,
    SlotExtractor,
)
from ridebooking.maps.base import DistanceProvider
from ridebooking.maps.validation import LocationCheck, assess_location
from ridebooking.models.conversation import Conversation, ConversationStep
from ridebooking.models.ride import BookingOutcome, RejectionReason, RideStatus
from ridebooking.models.window import TimeWindow
from ridebooking.phone import find_phone, redact_pii
from ridebooking.preferences.base import PreferenceStore, PreferredDriver
from ridebooking.store.base import ConversationStore
from ridebooking.store.locks import KeyedLocks
from ridebooking.timeutil import format_display, now_utc
from ridebooking.workflows.loader import default_workflow
from ridebooking.workflows.schema import RideStateDef, RideWorkflowDef

log = logging.getLogger("ridebooking.conversation")

DEFAULT_DURATION_MINUTES = 60
AUTO_ASSIGN_DEFAULT_DURATION = 30
MIN_DURATION_MINUTES = 5
MAX_DURATION_MINUTES = 480
MIN_LOCATION_LENGTH = 3
PREFERRED_MIN_RIDES = 2
AUTO_ASSIGN_CANDIDATES = 3

INVALID_INPUTS = {
    "ok", "okay", "yes", "no", "hi", "hello", "hey", "thanks", "thank you",
    "sure", "test", "here", "there", "somewhere", "anywhere",
}
AUTO_WORDS = {"auto", "auto assign", "auto-assign", "automatic", "any", "any driver"}
YES_WORDS = {"yes", "y", "yeah", "yep", "ok", "okay", "sure", "book them"}
NO_WORDS = {"no", "n", "nope", "different driver", "another driver", "new driver"}

BRANCH_STEPS = (
    ConversationStep.WAITING_FOR_ALTERNATIVE_DRIVER,
    ConversationStep.WAITING_FOR_ALTERNATIVE_TIME,
)
COLLECTING_STEPS = (
    ConversationStep.WAITING_FOR_FROM,
    ConversationStep.WAITING_FOR_TO,
    ConversationStep.WAITING_FOR_TIME,
    ConversationStep.WAITING_FOR_DRIVER,
)


def is_valid_location(text: str) -> bool:
    clean = (text or "").strip()
    return len(clean) >= MIN_LOCATION_LENGTH and clean.lower() not in INVALID_INPUTS


def is_choice(text: str, count: int) -> bool:
    """``text`` is a 1-based index into a list of ``count`` options."""
    return text.isdigit() and 1 <= int(text) <= count


def outcome_intent(outcome: BookingOutcome) -> str:
    """Workflow intent for a booking outcome."""
    if outcome.status == RideStatus.AUTO_ACCEPTED:
        return "accepted"
    if outcome.rejection_reason in (RejectionReason.DRIVER_CONFLICT, RejectionReason.DRIVER_LOCATION):
        return "driver_unavailable"
    if outcome.rejection_reason == RejectionReason.RIDER_CONFLICT:
        return "rider_unavailable"
    return "error"


def _clamp_duration(minutes: float) -> int:
    return min(max(round(minutes), MIN_DURATION_MINUTES), MAX_DURATION_MINUTES)


class ConversationMachine:
    def __init__(
        self,
        conversations: ConversationStore,
        orchestrator: BookingOrchestrator,
        locks: KeyedLocks,
        extractor: SlotExtractor | None = None,
        maps: DistanceProvider | None = None,
        preferences: PreferenceStore | None = None,
        workflow: RideWorkflowDef | None = None,
    ) -> None:
        self._conversations = conversations
        self._orchestrator = orchestrator
        self._locks = locks
        self._extractor = extractor
        self._maps = maps
        self._preferences = preferences
        self._workflow = workflow or default_workflow()

    @property
    def ai_available(self) -> bool:
        return self._extractor is not None

    # ── Public API ────────────────────────────────────────────

    async def handle_message(self, phone: str, text: str, now: datetime | None = None) -> str:
        """Process one inbound message and return the reply text."""
        now = now or now_utc()
        text = (text or "").strip()

        async with self._locks.hold(f"conversation:{phone}"):
            conversation, is_new = await self._load(phone, now)
            conversation.add_message("user", text, now, limit=settings.history_limit)

            try:
                reply = await self._dispatch(conversation, text, now, is_new)
            except Exception:
                log.exception("Conversation turn failed for %s", redact_pii(phone))
                if conversation.ai_enabled:
                    conversation.restore_context()
                reply = responses.GENERIC_ERROR

            # A retired conversation starts its next turn with an empty history
            if conversation.is_active:
                conversation.add_message(
                    "assistant",
                    reply,
                    now,
                    limit=settings.history_limit,
                    metadata={"step": conversation.step.value},
                )
            await self._conversations.save(conversation)

        log.info(
            "Turn for %s -> step=%s ai=%s",
            redact_pii(phone),
            conversation.step.value,
            conversation.ai_enabled,
        )
        return reply

    async def reset(self, phone: str, now: datetime | None = None) -> Conversation:
        """Retire the conversation for ``phone``, creating it if needed."""
        now = now or now_utc()
        async with self._locks.hold(f"conversation:{phone}"):
            conversation, _ = await self._load(phone, now)
            conversation.retire()
            await self._conversations.save(conversation)
        return conversation

    # ── Loading and dispatch ──────────────────────────────────

    async def _load(self, phone: str, now: datetime) -> tuple[Conversation, bool]:
        conversation = await self._conversations.get(phone, now)
        is_new = conversation is None
        if conversation is None:
            conversation = Conversation(
                phone=phone,
                ai_enabled=self.ai_available and settings.default_ai_mode,
                last_message_at=now,
            )
            conversation.step = conversation.initial_step()
            log.info("New conversation for %s", redact_pii(phone))

        if conversation.ai_enabled and not self.ai_available:
            conversation.ai_enabled = False
            if conversation.step == ConversationStep.AI_MANAGED:
                conversation.step = self._next_missing_step(conversation)
        conversation.is_active = True
        return conversation, is_new

    async def _dispatch(
        self, conversation: Conversation, text: str, now: datetime, is_new: bool
    ) -> str:
        command = detect_command(text, conversation.ai_enabled)
        if command is not None:
            return self._handle_command(conversation, command)

        if conversation.step in BRANCH_STEPS or not conversation.ai_enabled:
            if is_new:
                return self._opening(conversation)
            return await self._handle_step(conversation, text, now)

        if conversation.step != ConversationStep.AI_MANAGED:
            conversation.step = ConversationStep.AI_MANAGED
        return await self._handle_ai(conversation, text, now)

    def _handle_command(self, conversation: Conversation, command: Command) -> str:
        log.info("Command %s from %s", command.value, redact_pii(conversation.phone))
        if command == Command.RESTART:
            conversation.retire()
            return self._opening(conversation)

        if command == Command.HELP:
            return help_text(conversation.step, conversation.ai_enabled)

        if command == Command.AI_ON:
            if not self.ai_available:
                return f"{responses.AI_UNAVAILABLE}\n\n{self._prompt(conversation)}"
            conversation.ai_enabled = True
            if conversation.step in COLLECTING_STEPS or conversation.step == ConversationStep.COMPLETED:
                conversation.step = ConversationStep.AI_MANAGED
            return responses.AI_ENABLED

        conversation.ai_enabled = False
        conversation.pending_driver_choice = False
        conversation.suggested_driver = None
        if conversation.step == ConversationStep.AI_MANAGED:
            conversation.step = self._next_missing_step(conversation)
        return f"{responses.AI_DISABLED}\n\n{self._prompt(conversation)}"

    def _opening(self, conversation: Conversation) -> str:
        if conversation.step == ConversationStep.AI_MANAGED:
            return responses.AI_GREETING
        return self._prompt(conversation)

    # ── Workflow ──────────────────────────────────────────────

    def _state(self, step: ConversationStep) -> RideStateDef:
        return self._workflow.states[step.value]

    def _resolve_transition(self, state: RideStateDef, intent: str) -> RideStateDef:
        """Target state for ``intent``; unknown intents stay in ``state``."""
        target = state.transitions.get(intent)
        if not target:
            return state
        log.info("Step advance: %s -> %s (intent: %s)", state.id, target, intent)
        return self._workflow.states[target]

    def _advance(self, conversation: Conversation, state: RideStateDef, intent: str) -> str:
        target = self._resolve_transition(state, intent)
        conversation.step = ConversationStep(target.id)
        return self._render(target, conversation)

    def _render(self, state: RideStateDef, conversation: Conversation) -> str:
        """Fill {{placeholder}} fields of a state's prompt from the slots."""
        slots = conversation.slots
        replacements = {
            "{{pickup}}": slots.pickup or "",
            "{{destination}}": slots.destination or "",
            "{{time}}": format_display(slots.time) if slots.time else "",
            "{{duration}}": slots.estimated_duration or DEFAULT_DURATION_MINUTES,
        }
        prompt = state.on_enter
        for placeholder, value in replacements.items():
            prompt = prompt.replace(placeholder, str(value))
        return prompt

    def _prompt(self, conversation: Conversation) -> str:
        if conversation.step.value not in self._workflow.states:
            return responses.ask_missing(conversation.slots)
        return self._render(self._state(conversation.step), conversation)

    def _next_missing_step(self, conversation: Conversation) -> ConversationStep:
        slots = conversation.slots
        if not slots.pickup:
            return ConversationStep.WAITING_FOR_FROM
        if not slots.destination:
            return ConversationStep.WAITING_FOR_TO
        if not slots.time:
            return ConversationStep.WAITING_FOR_TIME
        return ConversationStep.WAITING_FOR_DRIVER

    # ── Step mode ─────────────────────────────────────────────

    async def _handle_step(self, conversation: Conversation, text: str, now: datetime) -> str:
        state = self._state(conversation.step)
        kind = state.input_kind

        if kind == "location":
            if not is_valid_location(text):
                return state.invalid_message
            check = await self._verify_location(text)
            if not check.accepted:
                return responses.location_rejected(check.reason, state.slot)
            slots = conversation.slots
            setattr(slots, state.slot, check.address)
            if slots.pickup and slots.destination:
                await self._estimate_trip(conversation)
            return self._advance(conversation, state, "provided")

        if kind == "time":
            try:
                conversation.slots.time = parse_time_input(text, now)
            except TimeParseError as e:
                return str(e)
            return self._advance(conversation, state, "provided")

        if kind in ("driver", "alternative_driver"):
            return await self._choose_driver(conversation, state, text, now)

        if kind == "alternative_time":
            return await self._choose_time(conversation, text, now)

        return self._render(state, conversation)

    async def _choose_driver(
        self, conversation: Conversation, state: RideStateDef, text: str, now: datetime
    ) -> str:
        clean = text.lower()
        if clean in AUTO_WORDS:
            return await self._auto_assign(conversation, now)

        alternatives = conversation.alternative_drivers
        if is_choice(clean, len(alternatives)):
            phone = alternatives[int(clean) - 1].driver_phone
        else:
            phone = find_phone(text)
        if not phone:
            return state.invalid_message
        return await self._book(conversation, phone, now)

    async def _choose_time(self, conversation: Conversation, text: str, now: datetime) -> str:
        clean = text.lower()
        suggestions = conversation.suggested_times
        if is_choice(clean, len(suggestions)):
            conversation.slots.time = suggestions[int(clean) - 1].at
        else:
            try:
                conversation.slots.time = parse_time_input(text, now)
            except TimeParseError as e:
                return str(e)

        if not conversation.slots.driver_phone:
            return await self._auto_assign(conversation, now)
        return await self._book(conversation, conversation.slots.driver_phone, now)

    # ── AI mode ───────────────────────────────────────────────

    async def _handle_ai(self, conversation: Conversation, text: str, now: datetime) -> str:
        if conversation.pending_driver_choice:
            return await self._driver_choice(conversation, text, now)

        # A number picks from the times offered after a rider conflict
        suggestions = conversation.suggested_times
        if suggestions and is_choice(text, len(suggestions)):
            conversation.slots.time = suggestions[int(text) - 1].at
            conversation.suggested_times = []
            return await self._continue_ai(conversation, now, time_given=True)

        result = await self._extract(conversation)
        if result.status == ExtractionStatus.FAILED:
            log.warning(
                "Extraction failed for %s: %s", redact_pii(conversation.phone), result.error
            )
            return responses.EXTRACTION_FAILED
        if result.status == ExtractionStatus.NEEDS_CLARIFICATION:
            return result.clarification_message

        previous = conversation.slots
        slots = conversation.slots = previous.merged(result.slots)
        if result.slots.time is not None:
            conversation.suggested_times = []

        rejected = None
        for name in ("pickup", "destination"):
            given = getattr(result.slots, name)
            if not given or given == getattr(previous, name):
                continue
            check = await self._verify_location(given)
            if check.accepted:
                setattr(slots, name, check.address)
            else:
                setattr(slots, name, getattr(previous, name))
                rejected = rejected or responses.location_rejected(check.reason, name)

        # A new route needs a new trip estimate
        if (slots.pickup, slots.destination) != (previous.pickup, previous.destination):
            slots.estimated_duration = None
            slots.distance_km = None
        if rejected:
            return rejected

        return await self._continue_ai(
            conversation,
            now,
            time_given=result.slots.time is not None,
            auto_assign=result.response_type == ResponseType.AUTO_ASSIGN_REQUEST,
        )

    async def _continue_ai(
        self,
        conversation: Conversation,
        now: datetime,
        time_given: bool,
        auto_assign: bool = False,
    ) -> str:
        slots = conversation.slots
        if slots.driver_phone == conversation.phone:
            slots.driver_phone = None
            return responses.SELF_AS_DRIVER

        if time_given:
            reply = await self._check_requested_time(conversation, now)
            if reply:
                return reply

        conversation.last_valid_context = slots.model_copy()
        if not slots.has_trip:
            return responses.ask_missing(slots)

        if slots.estimated_duration is None:
            await self._estimate_trip(conversation)

        if auto_assign:
            return await self._auto_assign(conversation, now)
        if slots.driver_phone:
            return await self._book(conversation, slots.driver_phone, now)
        return await self._offer_driver(conversation, now)

    async def _extract(self, conversation: Conversation) -> ExtractionResult:
        extractor = self._extractor
        try:
            return await call_external(
                "extraction",
                lambda: extractor.extract(conversation.phone, list(conversation.history)),
            )
        except Exception as e:
            log.warning("Extraction backend error: %s", e)
            return ExtractionResult.failed(str(e))

    async def _check_requested_time(self, conversation: Conversation, now: datetime) -> str | None:
        """Reject a past time or one that clashes with the rider's own plans."""
        slots = conversation.slots
        if slots.time <= now:
            slots.time = None
            return responses.PAST_TIME

        window = TimeWindow.starting_at(
            slots.time, slots.estimated_duration or DEFAULT_DURATION_MINUTES
        )
        try:
            check = await self._orchestrator.detector.detect(None, conversation.phone, window)
        except Exception as e:
            log.warning("Early rider conflict check failed: %s", e)
            return None
        if check.rejection_reason != RejectionReason.RIDER_CONFLICT:
            return None

        times = generate_alternative_times(slots.time, now)
        conversation.suggested_times = times
        slots.time = None
        return responses.rider_time_conflict(times)

    async def _offer_driver(self, conversation: Conversation, now: datetime) -> str:
        preferred = await self._preferred_drivers(conversation)
        if not preferred:
            return await self._auto_assign(conversation, now)

        top = preferred[0]
        conversation.pending_driver_choice = True
        conversation.suggested_driver = top.driver_phone
        return responses.preferred_driver_offer(top, conversation.slots)

    async def _preferred_drivers(self, conversation: Conversation) -> list[PreferredDriver]:
        if self._preferences is None:
            return []
        preferences = self._preferences
        try:
            found = await call_external(
                "preferences.query",
                lambda: preferences.query_preferred_drivers(
                    conversation.phone,
                    destination=conversation.slots.destination,
                    min_rides=PREFERRED_MIN_RIDES,
                ),
            )
        except Exception as e:
            log.warning("Preferred driver lookup failed: %s", e)
            return []
        return [p for p in found if p.driver_phone != conversation.phone]

    async def _driver_choice(self, conversation: Conversation, text: str, now: datetime) -> str:
        clean = text.lower()
        phone = find_phone(text)

        if clean in AUTO_WORDS:
            driver = None
        elif phone:
            driver = phone
        elif clean in YES_WORDS and conversation.suggested_driver:
            driver = conversation.suggested_driver
        elif clean in NO_WORDS:
            conversation.suggested_driver = None
            return responses.DRIVER_CHOICE_PROMPT
        else:
            return responses.DRIVER_CHOICE_PROMPT

        conversation.pending_driver_choice = False
        conversation.suggested_driver = None
        if driver is None:
            return await self._auto_assign(conversation, now)
        return await self._book(conversation, driver, now)

    # ── Booking ───────────────────────────────────────────────

    async def _verify_location(self, text: str) -> LocationCheck:
        """Geocode a rider-given place; an unreachable maps service lets it through."""
        if self._maps is None:
            return assess_location(text, None)
        maps = self._maps
        try:
            result = await call_external("maps.geocode", lambda: maps.geocode(text))
        except Exception as e:
            log.warning("Location check unavailable, accepting %r: %s", text, e)
            result = None
        check = assess_location(text, result)
        if not check.accepted:
            log.info("Location %r rejected: %s", text, check.reason)
        return check

    async def _estimate_trip(self, conversation: Conversation) -> None:
        slots = conversation.slots
        slots.estimated_duration = DEFAULT_DURATION_MINUTES
        slots.distance_km = None
        if self._maps is None or not (slots.pickup and slots.destination):
            return
        maps = self._maps
        try:
            result = await call_external(
                "maps.distance_duration",
                lambda: maps.distance_duration(slots.pickup, slots.destination),
            )
        except Exception as e:
            log.warning("Trip estimate unavailable: %s", e)
            return
        if result is not None:
            slots.estimated_duration = _clamp_duration(result.minutes)
            slots.distance_km = round(result.km, 1)

    async def _auto_assign(self, conversation: Conversation, now: datetime) -> str:
        slots = conversation.slots
        exclude = [conversation.phone]
        if conversation.step == ConversationStep.WAITING_FOR_ALTERNATIVE_DRIVER and slots.driver_phone:
            exclude.append(slots.driver_phone)

        try:
            ranked = await self._orchestrator.ranker.find_nearest_available(
                slots.pickup, slots.time, max_results=AUTO_ASSIGN_CANDIDATES, exclude=exclude
            )
        except Exception:
            log.exception("Driver ranking failed")
            ranked = []
        if not ranked:
            return responses.NO_DRIVERS

        top = ranked[0]
        if slots.estimated_duration is None:
            slots.estimated_duration = (
                _clamp_duration(top.duration_minutes)
                if top.duration_minutes
                else AUTO_ASSIGN_DEFAULT_DURATION
            )
        log.info("Auto-assigning %s (score %.3f)", redact_pii(top.phone), top.score)
        reply = await self._book(conversation, top.phone, now)
        return f"{responses.auto_assigned(top.phone, top.driver.rating, top.distance_km)}\n\n{reply}"

    async def _book(self, conversation: Conversation, driver_phone: str, now: datetime) -> str:
        if driver_phone == conversation.phone:
            return responses.SELF_AS_DRIVER

        slots = conversation.slots
        slots.driver_phone = driver_phone
        try:
            outcome = await self._orchestrator.book(
                driver_phone,
                conversation.phone,
                slots.pickup,
                slots.destination,
                slots.time,
                estimated_duration=slots.estimated_duration,
                notify_rider=False,
                now=now,
            )
        except BookingValidationError as e:
            log.info("Booking input rejected: %s", e)
            if e.field == "time":
                slots.time = None
                if not conversation.ai_enabled:
                    conversation.step = ConversationStep.WAITING_FOR_TIME
                return f"{e}. {responses.PAST_TIME}"
            return f"I couldn't book that ride: {e}. Type 'restart' to start over."

        return self._apply_outcome(conversation, outcome)

    def _apply_outcome(self, conversation: Conversation, outcome: BookingOutcome) -> str:
        intent = outcome_intent(outcome)
        if intent == "accepted":
            conversation.retire(
                None if conversation.ai_enabled else ConversationStep.COMPLETED
            )
            return outcome.message

        conversation.rejected_ride_id = outcome.ride_id
        if intent == "error" and conversation.step == ConversationStep.AI_MANAGED:
            return outcome.message

        resolution = outcome.conflict_resolution
        if intent == "driver_unavailable":
            conversation.alternative_drivers = resolution.alternative_drivers if resolution else []
        elif intent == "rider_unavailable":
            conversation.suggested_times = resolution.suggested_times if resolution else []

        origin = (
            conversation.step
            if conversation.step.value in self._workflow.states
            else ConversationStep.WAITING_FOR_DRIVER
        )
        target = self._resolve_transition(self._state(origin), intent)
        conversation.step = ConversationStep(target.id)
        return outcome.message
