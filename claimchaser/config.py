"""
Application configuration via environment variables.

Uses Pydantic BaseSettings to load and validate all config from env vars
or a .env.local file. Every setting has a sensible default for local
development so the app can start with minimal configuration.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment selector."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Central configuration for the Claim Chaser service.

    Values are loaded from environment variables first, falling back
    to a `.env.local` file in the project root. Secrets should NEVER
    be committed.
    """

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────
    environment: Environment = Environment.DEVELOPMENT

    # ── Supabase ─────────────────────────────────────────────────
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service-role key")

    # ── ElevenLabs Conversational AI ─────────────────────────────
    elevenlabs_api_key: str = Field(default="", description="ElevenLabs API key")
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io/v1", description="ElevenLabs API root")
    elevenlabs_agent_id: str = Field(default="", description="Agent ID; discovered by name when empty")
    elevenlabs_agent_name: str = Field(default="claim chaser", description="Agent name fragment used for discovery")
    elevenlabs_phone_number_id: str = Field(default="", description="Outbound phone number ID; first one when empty")
    voice_http_timeout_seconds: float = Field(default=30.0, gt=0, le=120, description="Timeout for provider requests")

    # ── Redis (dispatch lock) ────────────────────────────────────
    redis_url: str = Field(default="", description="Redis URL; empty uses an in-process lock")
    dispatch_lock_ttl_seconds: int = Field(
        default=90, ge=5, le=600, description="Dispatch lock expiry; refreshed before each provider request"
    )

    # ── Cron trigger ─────────────────────────────────────────────
    cron_secret: str = Field(default="", description="Bearer token required by the cron endpoint")

    # ── Reconciliation timing ────────────────────────────────────
    reconcile_interval_seconds: float = Field(default=60.0, ge=1, description="Worker sweep period")
    reconcile_grace_seconds: int = Field(default=60, ge=0, description="Skip active calls younger than this")
    recent_completed_window_seconds: int = Field(default=600, ge=0, description="Re-check unextracted completed calls")
    recent_started_window_seconds: int = Field(default=1800, ge=0, description="Re-check recent unextracted calls")
    missing_conversation_timeout_seconds: int = Field(
        default=300, ge=60, description="Force-complete calls that never got a conversation ID"
    )
    max_call_duration_seconds: int = Field(default=7200, ge=600, le=86400, description="Hard limit per call")
    transcript_retry_delay_seconds: float = Field(default=1.0, ge=0, le=30, description="Delay before the transcript retry")
    claim_match_window_hours: float = Field(default=2.0, gt=0, le=48, description="Phone match window around call start")

    # ── Agent prompt ─────────────────────────────────────────────
    agent_persona_name: str = Field(default="Russel", description="Name the agent introduces itself with")
    default_npi: str = Field(default="1740598556", description="NPI keyed in when the doctor has none")
    default_ein: str = Field(default="453080679", description="EIN keyed in when the office has none")
    default_patient_id: str = Field(default="101987841000", description="Member ID keyed in when the claim has none")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Root log level")

    @model_validator(mode="after")
    def check_lock_outlives_provider_request(self) -> "Settings":
        # The dialer refreshes the lock before each provider request, so one
        # request plus the store reads around it must fit inside the TTL.
        if self.dispatch_lock_ttl_seconds < 2 * self.voice_http_timeout_seconds:
            raise ValueError(
                "dispatch_lock_ttl_seconds must be at least twice voice_http_timeout_seconds"
            )
        return self

    # ── Derived helpers ──────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached Settings instance.

    Using lru_cache ensures we read env vars exactly once, and every
    module that calls ``get_settings()`` gets the same object.
    """
    return Settings()
