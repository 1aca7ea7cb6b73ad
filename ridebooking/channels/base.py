"""MessageChannel ABC: one interface for every outbound transport.

The booking flow only ever calls ``send``. A channel never raises for
delivery problems; it reports them in the returned DeliveryResult so a
failed notification cannot overturn a booking decision.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ridebooking.phone import redact_pii

log = logging.getLogger("ridebooking.channels")


@dataclass
class DeliveryResult:
    delivered: bool
    transport: str = ""
    message_id: str = ""
    error: str = ""


class MessageChannel(ABC):
    """Abstract outbound messaging transport."""

    @abstractmethod
    async def send(self, destination: str, text: str) -> DeliveryResult:
        """Send ``text`` to the phone number ``destination``."""


class LoggingChannel(MessageChannel):
    """Mock transport: records messages and writes them to the log."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, destination: str, text: str) -> DeliveryResult:
        self.sent.append((destination, text))
        log.info("[mock] message to %s: %s", redact_pii(destination), text[:80])
        return DeliveryResult(delivered=True, transport="mock")
