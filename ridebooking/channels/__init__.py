"""Outbound messaging channels."""

from .base import DeliveryResult, LoggingChannel, MessageChannel

__all__ = ["DeliveryResult", "LoggingChannel", "MessageChannel"]
