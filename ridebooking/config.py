"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("ridebooking.config")


class Settings(BaseSettings):
    # LLM (slot extraction)
    llm_provider: str = "claude"
    anthropic_api_key: str = ""
    extraction_model: str = "claude-3-5-haiku-latest"
    extraction_max_tokens: int = 400

    # Twilio
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    twilio_whatsapp_number: str = ""
    mock_messaging: bool = False

    # Google Calendar
    google_service_account_json: str = ""
    google_calendar_id: str = "primary"
    calendar_timezone: str = "Asia/Karachi"

    # Region used to read numbers written without a country code
    phone_region: str = "PK"

    # Google Maps
    google_maps_api_key: str = ""
    maps_region: str = "pk"

    # Preference store (RAG service); empty = in-memory
    rag_service_url: str = ""

    # Admin auth
    admin_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    # Conflict detection
    conflict_search_padding_minutes: int = 120
    rider_conflict_priority: bool = True

    # Proximity
    near_term_hours: float = 4.0
    location_stale_minutes: int = 120
    max_pickup_distance_km: float = 10.0
    max_pickup_duration_minutes: float = 20.0
    same_area_threshold_minutes: float = 30.0
    minimum_gap_minutes: float = 120.0

    # Ranking
    ranking_max_distance_km: float = 20.0
    ranking_max_duration_minutes: float = 30.0
    availability_before_minutes: int = 30
    availability_after_minutes: int = 90
    ranking_max_results: int = 5

    # Conversation
    conversation_ttl_seconds: int = 1800
    history_limit: int = 20
    default_ai_mode: bool = True

    # External calls
    external_timeout_seconds: float = 10.0
    external_retry_backoff_seconds: float = 0.5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def validate_startup(self) -> list[str]:
        """Collect warnings about missing integrations; raise on unusable limits."""
        warnings: list[str] = []
        _placeholders = {"sk-ant-...", "AC...", "path/to/service-account.json"}

        if self.near_term_hours <= 0 or self.conversation_ttl_seconds <= 0:
            raise ValueError(
                "NEAR_TERM_HOURS and CONVERSATION_TTL_SECONDS must be positive."
            )

        # LLM key: AI mode degrades to step mode without it
        if self.llm_provider == "claude":
            if not self.anthropic_api_key or self.anthropic_api_key in _placeholders:
                warnings.append(
                    "ANTHROPIC_API_KEY is missing or a placeholder. "
                    "Conversations will run in step-by-step mode."
                )

        if not self.admin_api_key:
            state = "open (DEBUG=true)" if self.debug else "locked"
            warnings.append(
                f"ADMIN_API_KEY not set. Conversation reset and stats routes are {state}."
            )

        if not self.mock_messaging and (
            not self.twilio_account_sid or self.twilio_account_sid in _placeholders
        ):
            warnings.append(
                "TWILIO_ACCOUNT_SID not set. Outbound messages will only be logged."
            )

        if (
            not self.google_service_account_json
            or self.google_service_account_json in _placeholders
        ):
            warnings.append(
                "GOOGLE_SERVICE_ACCOUNT_JSON not set. Calendar checks are skipped."
            )

        if not self.google_maps_api_key:
            warnings.append(
                "GOOGLE_MAPS_API_KEY not set. Distance checks pass with a warning."
            )

        return warnings


settings = Settings()
