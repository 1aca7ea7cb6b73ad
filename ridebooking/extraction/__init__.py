"""Free-text slot extraction."""

from .base import ExtractionResult, ExtractionStatus, ResponseType, SlotExtractor

__all__ = ["ExtractionResult", "ExtractionStatus", "ResponseType", "SlotExtractor"]
