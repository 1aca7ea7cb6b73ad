"""Rider-facing booking conversations over WhatsApp/SMS."""

from .machine import ConversationMachine

__all__ = ["ConversationMachine"]
