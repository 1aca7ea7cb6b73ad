"""Wire stores, providers and engine components into one object graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from ridebooking.calendar_providers.base import CalendarProvider
from ridebooking.channels.base import LoggingChannel, MessageChannel
from ridebooking.config import settings
from ridebooking.conversation.machine import ConversationMachine
from ridebooking.engine.conflicts import ConflictDetector
from ridebooking.engine.notifications import Notifier
from ridebooking.engine.orchestrator import BookingOrchestrator
from ridebooking.engine.proximity import ProximityValidator
from ridebooking.engine.ranking import DriverRanker
from ridebooking.extraction.base import SlotExtractor
from ridebooking.maps.base import DistanceProvider
from ridebooking.models.driver import Driver
from ridebooking.preferences.base import PreferenceStore
from ridebooking.preferences.memory import InMemoryPreferenceStore
from ridebooking.store.locks import KeyedLocks
from ridebooking.store.memory import (
    InMemoryConversationStore,
    InMemoryDriverStore,
    InMemoryRideStore,
    InMemoryRiderStore,
)

log = logging.getLogger("ridebooking.services")


@dataclass
class Services:
    rides: InMemoryRideStore
    drivers: InMemoryDriverStore
    riders: InMemoryRiderStore
    conversations: InMemoryConversationStore
    locks: KeyedLocks
    calendar: CalendarProvider | None
    maps: DistanceProvider | None
    channel: MessageChannel | None
    preferences: PreferenceStore | None
    extractor: SlotExtractor | None
    detector: ConflictDetector
    proximity: ProximityValidator
    ranker: DriverRanker
    orchestrator: BookingOrchestrator
    machine: ConversationMachine


def build_services(
    calendar: CalendarProvider | None = None,
    maps: DistanceProvider | None = None,
    channel: MessageChannel | None = None,
    extractor: SlotExtractor | None = None,
    preferences: PreferenceStore | None = None,
    drivers: Iterable[Driver] = (),
) -> Services:
    """Build the engine over in-memory stores and the given providers."""
    rides = InMemoryRideStore()
    driver_store = InMemoryDriverStore(drivers)
    riders = InMemoryRiderStore()
    conversations = InMemoryConversationStore()
    locks = KeyedLocks()

    detector = ConflictDetector(rides, calendar=calendar)
    proximity = ProximityValidator(driver_store, rides, maps)
    ranker = DriverRanker(driver_store, rides, maps, detector)
    orchestrator = BookingOrchestrator(
        rides=rides,
        drivers=driver_store,
        riders=riders,
        proximity=proximity,
        detector=detector,
        ranker=ranker,
        notifier=Notifier(channel),
        locks=locks,
        calendar=calendar,
        maps=maps,
        preferences=preferences,
    )
    machine = ConversationMachine(
        conversations,
        orchestrator,
        locks,
        extractor=extractor,
        maps=maps,
        preferences=preferences,
    )
    return Services(
        rides=rides,
        drivers=driver_store,
        riders=riders,
        conversations=conversations,
        locks=locks,
        calendar=calendar,
        maps=maps,
        channel=channel,
        preferences=preferences,
        extractor=extractor,
        detector=detector,
        proximity=proximity,
        ranker=ranker,
        orchestrator=orchestrator,
        machine=machine,
    )


def build_services_from_settings() -> Services:
    """Build the engine with whichever external providers are configured.

    A provider that is not configured, or fails to initialize, is left out
    and the engine runs without it.
    """
    calendar = None
    if settings.google_service_account_json:
        try:
            from ridebooking.calendar_providers.google import GoogleCalendarProvider
            calendar = GoogleCalendarProvider(
                service_account_path=settings.google_service_account_json,
            )
        except Exception as e:
            log.warning("Google Calendar not configured: %s", e)

    maps = None
    if settings.google_maps_api_key:
        from ridebooking.maps.google import GoogleMapsProvider
        maps = GoogleMapsProvider()

    channel: MessageChannel = LoggingChannel()
    if not settings.mock_messaging and settings.twilio_account_sid:
        try:
            from ridebooking.channels.twilio_channel import TwilioMessageChannel
            channel = TwilioMessageChannel()
        except ValueError as e:
            log.warning("Twilio not configured, logging messages instead: %s", e)

    preferences: PreferenceStore = InMemoryPreferenceStore()
    if settings.rag_service_url:
        from ridebooking.preferences.rag import RagPreferenceStore
        preferences = RagPreferenceStore()

    extractor = None
    if settings.llm_provider == "claude" and settings.anthropic_api_key:
        from ridebooking.extraction.claude import ClaudeSlotExtractor
        extractor = ClaudeSlotExtractor()

    log.info(
        "Providers: calendar=%s maps=%s channel=%s preferences=%s extractor=%s",
        type(calendar).__name__ if calendar else "-",
        type(maps).__name__ if maps else "-",
        type(channel).__name__,
        type(preferences).__name__,
        type(extractor).__name__ if extractor else "-",
    )
    return build_services(
        calendar=calendar,
        maps=maps,
        channel=channel,
        extractor=extractor,
        preferences=preferences,
    )
