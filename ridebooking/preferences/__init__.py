"""Rider-driver affinity stores."""

from .base import PreferenceStore, PreferredDriver
from .memory import InMemoryPreferenceStore

__all__ = ["InMemoryPreferenceStore", "PreferenceStore", "PreferredDriver"]
