"""
Supabase Database Client.

Provides the claim/call store used by every service, with typed helper
methods for the handful of queries call orchestration needs. Business
logic only ever talks to ``ClaimStore``; swapping the backing client (or
faking it in tests) does not touch the services.
"""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any, Optional

from supabase import Client, create_client

from claimchaser.config import get_settings
from claimchaser.exceptions import StoreError
from claimchaser.logging_config import get_logger
from claimchaser.schemas.call import ACTIVE_STATUSES, CallRecord
from claimchaser.schemas.claim import ClaimRecord, DenialReasonRecord
from claimchaser.schemas.voice import VoiceSettingsRecord
from claimchaser.utils import to_iso

logger = get_logger(__name__)

CALLS = "calls"
CLAIMS = "claims"
DENIAL_REASONS = "denial_reasons"
VOICE_SETTINGS = "voice_settings"
PROVIDERS = "providers"
OFFICES = "offices"
DOCTORS = "doctors"

_ACTIVE = [s.value for s in ACTIVE_STATUSES]


class ClaimStore:
    """Wrapper around the official Supabase Python client."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    def _execute(self, query: Any, action: str, **context: Any) -> Any:
        try:
            return query.execute()
        except Exception as e:
            logger.error("store_error", action=action, error=str(e), **context)
            raise StoreError(f"Failed to {action}: {e}") from e

    def _first(self, query: Any, action: str, **context: Any) -> dict[str, Any] | None:
        response = self._execute(query.limit(1), action, **context)
        return response.data[0] if response.data else None

    # -- Calls --

    async def get_call(self, call_id: str) -> CallRecord | None:
        row = self._first(
            self.client.table(CALLS).select("*").eq("id", call_id),
            "fetch call", call_id=call_id,
        )
        return CallRecord.model_validate(row) if row else None

    async def get_call_by_conversation(self, conversation_id: str) -> CallRecord | None:
        row = self._first(
            self.client.table(CALLS).select("*").eq("conversation_id", conversation_id),
            "fetch call by conversation", conversation_id=conversation_id,
        )
        return CallRecord.model_validate(row) if row else None

    async def find_active_call(self) -> CallRecord | None:
        """Most recent call that is still initiated/in progress and not ended."""
        row = self._first(
            self.client.table(CALLS)
            .select("*")
            .in_("status", _ACTIVE)
            .is_("ended_at", "null")
            .order("started_at", desc=True),
            "fetch active call",
        )
        return CallRecord.model_validate(row) if row else None

    async def count_active_calls(self) -> int:
        response = self._execute(
            self.client.table(CALLS)
            .select("id", count="exact")
            .in_("status", _ACTIVE)
            .is_("ended_at", "null"),
            "count active calls",
        )
        return response.count or 0

    async def list_active_calls_started_before(self, cutoff: datetime) -> list[CallRecord]:
        response = self._execute(
            self.client.table(CALLS)
            .select("*")
            .in_("status", _ACTIVE)
            .is_("ended_at", "null")
            .lt("started_at", to_iso(cutoff))
            .order("started_at", desc=False),
            "list stale active calls",
        )
        return [CallRecord.model_validate(row) for row in response.data or []]

    async def list_unextracted_calls_completed_since(self, ended_after: datetime, limit: int = 10) -> list[CallRecord]:
        response = self._execute(
            self.client.table(CALLS)
            .select("*")
            .eq("status", "completed")
            .gte("ended_at", to_iso(ended_after))
            .is_("extracted_data", "null")
            .not_.is_("conversation_id", "null")
            .order("ended_at", desc=True)
            .limit(limit),
            "list unextracted completed calls",
        )
        return [CallRecord.model_validate(row) for row in response.data or []]

    async def list_unextracted_calls_started_between(
        self, started_after: datetime, started_before: datetime, limit: int = 10
    ) -> list[CallRecord]:
        response = self._execute(
            self.client.table(CALLS)
            .select("*")
            .gte("started_at", to_iso(started_after))
            .lt("started_at", to_iso(started_before))
            .is_("extracted_data", "null")
            .not_.is_("conversation_id", "null")
            .order("started_at", desc=False)
            .limit(limit),
            "list unextracted calls",
        )
        return [CallRecord.model_validate(row) for row in response.data or []]

    async def list_ended_calls(self, limit: Optional[int] = None) -> list[CallRecord]:
        query = (
            self.client.table(CALLS)
            .select("*")
            .not_.is_("ended_at", "null")
            .order("ended_at", desc=True)
        )
        if limit is not None:
            query = query.limit(limit)
        response = self._execute(query, "list ended calls")
        return [CallRecord.model_validate(row) for row in response.data or []]

    async def count_calls_started_between(self, start: datetime, end: datetime) -> int:
        response = self._execute(
            self.client.table(CALLS)
            .select("id", count="exact")
            .gte("started_at", to_iso(start))
            .lt("started_at", to_iso(end)),
            "count calls started",
        )
        return response.count or 0

    async def insert_call(self, payload: dict[str, Any]) -> CallRecord:
        response = self._execute(
            self.client.table(CALLS).insert(payload), "create call record", claim_id=payload.get("claim_id")
        )
        if not response.data:
            raise StoreError("Failed to create call record: no row returned")
        return CallRecord.model_validate(response.data[0])

    async def update_call(self, call_id: str, updates: dict[str, Any]) -> CallRecord | None:
        """Update a call row. ``conversation_id`` is immutable and never written here."""
        updates = {k: v for k, v in updates.items() if k != "conversation_id"}
        response = self._execute(
            self.client.table(CALLS).update(updates).eq("id", call_id),
            "update call", call_id=call_id,
        )
        return CallRecord.model_validate(response.data[0]) if response.data else None

    # -- Claims --

    async def get_claim(self, claim_id: str) -> ClaimRecord | None:
        row = self._first(
            self.client.table(CLAIMS).select("*").eq("id", claim_id),
            "fetch claim", claim_id=claim_id,
        )
        return ClaimRecord.model_validate(row) if row else None

    async def find_oldest_claim_with_status(self, claim_status: str) -> ClaimRecord | None:
        row = self._first(
            self.client.table(CLAIMS)
            .select("*")
            .eq("claim_status", claim_status)
            .order("created_at", desc=False),
            "fetch claim by status", claim_status=claim_status,
        )
        return ClaimRecord.model_validate(row) if row else None

    async def find_oldest_uncalled_claim(self) -> ClaimRecord | None:
        row = self._first(
            self.client.table(CLAIMS)
            .select("*")
            .is_("called_at", "null")
            .order("created_at", desc=False),
            "fetch uncalled claim",
        )
        return ClaimRecord.model_validate(row) if row else None

    async def find_claim_by_phone_called_between(
        self, phones: list[str], start: datetime, end: datetime
    ) -> ClaimRecord | None:
        """Most recently called claim whose provider phone matches, within [start, end]."""
        row = self._first(
            self.client.table(CLAIMS)
            .select("*, providers!inner(claims_phone_number)")
            .in_("providers.claims_phone_number", phones)
            .gte("called_at", to_iso(start))
            .lte("called_at", to_iso(end))
            .order("called_at", desc=True),
            "match claim by phone and time", phones=phones,
        )
        return ClaimRecord.model_validate(row) if row else None

    async def find_latest_claim_by_phone(self, phones: list[str]) -> ClaimRecord | None:
        row = self._first(
            self.client.table(CLAIMS)
            .select("*, providers!inner(claims_phone_number)")
            .in_("providers.claims_phone_number", phones)
            .order("created_at", desc=True),
            "match claim by phone", phones=phones,
        )
        return ClaimRecord.model_validate(row) if row else None

    async def update_claim(self, claim_id: str, updates: dict[str, Any]) -> ClaimRecord | None:
        response = self._execute(
            self.client.table(CLAIMS).update(updates).eq("id", claim_id),
            "update claim", claim_id=claim_id,
        )
        return ClaimRecord.model_validate(response.data[0]) if response.data else None

    # -- Related rows used for prompts --

    async def get_provider(self, provider_id: str) -> dict[str, Any] | None:
        return self._first(
            self.client.table(PROVIDERS).select("*").eq("id", provider_id),
            "fetch provider", provider_id=provider_id,
        )

    async def get_office(self, office_id: str) -> dict[str, Any] | None:
        try:
            return self._first(
                self.client.table(OFFICES).select("*").eq("id", office_id),
                "fetch office", office_id=office_id,
            )
        except StoreError:
            # The prompt is still usable without office details
            return None

    async def get_doctor(self, doctor_id: str) -> dict[str, Any] | None:
        try:
            return self._first(
                self.client.table(DOCTORS).select("*").eq("id", doctor_id),
                "fetch doctor", doctor_id=doctor_id,
            )
        except StoreError:
            return None

    # -- Denial reasons --

    async def list_denial_reasons(self, claim_id: str) -> list[DenialReasonRecord]:
        response = self._execute(
            self.client.table(DENIAL_REASONS)
            .select("*")
            .eq("claim_id", claim_id)
            .order("date_recorded", desc=False),
            "list denial reasons", claim_id=claim_id,
        )
        return [DenialReasonRecord.model_validate(row) for row in response.data or []]

    async def insert_denial_reasons(self, rows: list[dict[str, Any]]) -> list[DenialReasonRecord]:
        if not rows:
            return []
        response = self._execute(
            self.client.table(DENIAL_REASONS).insert(rows),
            "insert denial reasons", count=len(rows),
        )
        return [DenialReasonRecord.model_validate(row) for row in response.data or []]

    async def get_denial_reason(self, denial_reason_id: str) -> DenialReasonRecord | None:
        row = self._first(
            self.client.table(DENIAL_REASONS).select("*").eq("id", denial_reason_id),
            "fetch denial reason", denial_reason_id=denial_reason_id,
        )
        return DenialReasonRecord.model_validate(row) if row else None

    async def update_denial_reason(
        self, denial_reason_id: str, updates: dict[str, Any]
    ) -> DenialReasonRecord | None:
        response = self._execute(
            self.client.table(DENIAL_REASONS).update(updates).eq("id", denial_reason_id),
            "update denial reason", denial_reason_id=denial_reason_id,
        )
        return DenialReasonRecord.model_validate(response.data[0]) if response.data else None

    async def delete_denial_reason(self, denial_reason_id: str) -> bool:
        response = self._execute(
            self.client.table(DENIAL_REASONS).delete().eq("id", denial_reason_id),
            "delete denial reason", denial_reason_id=denial_reason_id,
        )
        return bool(response.data)

    # -- Voice settings --

    async def get_voice_settings(self) -> VoiceSettingsRecord | None:
        """Latest settings row; older duplicates are ignored."""
        row = self._first(
            self.client.table(VOICE_SETTINGS).select("*").order("created_at", desc=True),
            "fetch voice settings",
        )
        return VoiceSettingsRecord.model_validate(row) if row else None

    async def create_voice_settings(self, enabled: bool) -> VoiceSettingsRecord:
        response = self._execute(
            self.client.table(VOICE_SETTINGS).insert({"enabled": enabled}),
            "create voice settings",
        )
        if not response.data:
            raise StoreError("Failed to create voice settings: no row returned")
        return VoiceSettingsRecord.model_validate(response.data[0])

    async def update_voice_settings(self, settings_id: str, enabled: bool) -> VoiceSettingsRecord:
        response = self._execute(
            self.client.table(VOICE_SETTINGS).update({"enabled": enabled}).eq("id", settings_id),
            "update voice settings", settings_id=settings_id,
        )
        if not response.data:
            raise StoreError("Failed to update voice settings: no row returned")
        return VoiceSettingsRecord.model_validate(response.data[0])


def create_store() -> ClaimStore:
    """Build a store from settings."""
    settings = get_settings()

    if not settings.supabase_url or not settings.supabase_service_key:
        logger.warning(
            "Supabase credentials missing. Database operations will fail.",
            url=bool(settings.supabase_url),
            key=bool(settings.supabase_service_key),
        )

    try:
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        logger.info("Supabase client initialized", url=settings.supabase_url)
    except Exception as e:
        logger.error("Failed to initialize Supabase client", error=str(e))
        raise

    return ClaimStore(client)


# Global accessor
@lru_cache(maxsize=1)
def get_db() -> ClaimStore:
    return create_store()
