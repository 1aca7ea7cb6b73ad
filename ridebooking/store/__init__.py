"""Persistence interfaces and the in-memory implementation."""

from .base import ConversationStore, DriverStore, RideStore, RiderStore
from .locks import KeyedLocks
from .memory import (
    InMemoryConversationStore,
    InMemoryDriverStore,
    InMemoryRideStore,
    InMemoryRiderStore,
)

__all__ = [
    "ConversationStore",
    "DriverStore",
    "InMemoryConversationStore",
    "InMemoryDriverStore",
    "InMemoryRideStore",
    "InMemoryRiderStore",
    "KeyedLocks",
    "RideStore",
    "RiderStore",
]
