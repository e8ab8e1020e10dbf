"""In-memory stand-in for ClaimStore used across the test suite."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import TypeAdapter

from claimchaser.schemas.call import ACTIVE_STATUSES, CallRecord
from claimchaser.schemas.claim import ClaimRecord, DenialReasonRecord
from claimchaser.schemas.voice import VoiceSettingsRecord
from claimchaser.utils import to_iso, utcnow

_dt = TypeAdapter(datetime)
_ACTIVE = {s.value for s in ACTIVE_STATUSES}


def _parse(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return _dt.validate_python(value)


class FakeStore:
    def __init__(self) -> None:
        self.calls: dict[str, dict[str, Any]] = {}
        self.claims: dict[str, dict[str, Any]] = {}
        self.providers: dict[str, dict[str, Any]] = {}
        self.offices: dict[str, dict[str, Any]] = {}
        self.doctors: dict[str, dict[str, Any]] = {}
        self.denial_reasons: dict[str, dict[str, Any]] = {}
        self.voice_settings: list[dict[str, Any]] = []
        self.call_updates: list[tuple[str, dict[str, Any]]] = []
        self.claim_updates: list[tuple[str, dict[str, Any]]] = []
        self._ids = itertools.count(1)
        self._epoch = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _tick(self) -> str:
        return to_iso(self._epoch + timedelta(seconds=next(self._ids)))

    # -- Seeding helpers --

    def add_provider(self, claims_phone_number: Optional[str] = "+15551234567", **fields: Any) -> str:
        provider_id = fields.pop("id", None) or self._next_id("provider")
        self.providers[provider_id] = {
            "id": provider_id,
            "name": "Aetna",
            "claims_phone_number": claims_phone_number,
            **fields,
        }
        return provider_id

    def add_office(self, **fields: Any) -> str:
        office_id = fields.pop("id", None) or self._next_id("office")
        self.offices[office_id] = {"id": office_id, "name": "Main Street Clinic", **fields}
        return office_id

    def add_doctor(self, **fields: Any) -> str:
        doctor_id = fields.pop("id", None) or self._next_id("doctor")
        self.doctors[doctor_id] = {"id": doctor_id, "name": "Dr. Rivera", **fields}
        return doctor_id

    def add_claim(self, **fields: Any) -> str:
        claim_id = fields.pop("id", None) or self._next_id("claim")
        row = {
            "id": claim_id,
            "patient_name": "Jane Doe",
            "claim_status": "Denied",
            "called_at": None,
            "next_steps": None,
            "created_at": self._tick(),
            **fields,
        }
        for key in ("called_at", "created_at"):
            if isinstance(row[key], datetime):
                row[key] = to_iso(row[key])
        self.claims[claim_id] = row
        return claim_id

    def add_call(self, **fields: Any) -> CallRecord:
        call_id = fields.pop("id", None) or self._next_id("call")
        row = {
            "id": call_id,
            "claim_id": None,
            "conversation_id": None,
            "call_sid": None,
            "to_number": "+15551234567",
            "status": "initiated",
            "started_at": utcnow(),
            "ended_at": None,
            "transcript": None,
            "extracted_data": None,
            **fields,
        }
        for key in ("started_at", "ended_at"):
            if isinstance(row[key], datetime):
                row[key] = to_iso(row[key])
        self.calls[call_id] = row
        return CallRecord.model_validate(row)

    def add_denial_reason(self, claim_id: str, denial_reason: str, **fields: Any) -> str:
        reason_id = fields.pop("id", None) or self._next_id("reason")
        self.denial_reasons[reason_id] = {
            "id": reason_id,
            "claim_id": claim_id,
            "denial_reason": denial_reason,
            "status": "Pending",
            "date_recorded": "2024-01-01",
            "date_reason_resubmitted": None,
            "date_accepted": None,
            **fields,
        }
        return reason_id

    def set_voice_enabled(self, enabled: bool) -> None:
        self.voice_settings.append({
            "id": self._next_id("voice"),
            "enabled": enabled,
            "created_at": self._tick(),
        })

    def call(self, call_id: str) -> CallRecord:
        return CallRecord.model_validate(self.calls[call_id])

    def claim(self, claim_id: str) -> ClaimRecord:
        return ClaimRecord.model_validate(self.claims[claim_id])

    def reasons_for(self, claim_id: str) -> list[dict[str, Any]]:
        return [r for r in self.denial_reasons.values() if r["claim_id"] == claim_id]

    def active_calls(self) -> list[CallRecord]:
        return [c for c in self._call_records() if c.is_active]

    # -- Calls --

    def _call_records(self) -> list[CallRecord]:
        return [CallRecord.model_validate(row) for row in self.calls.values()]

    def _active(self) -> list[CallRecord]:
        return [c for c in self._call_records() if c.status.value in _ACTIVE and c.ended_at is None]

    async def get_call(self, call_id: str) -> CallRecord | None:
        row = self.calls.get(call_id)
        return CallRecord.model_validate(row) if row else None

    async def get_call_by_conversation(self, conversation_id: str) -> CallRecord | None:
        for call in self._call_records():
            if call.conversation_id == conversation_id:
                return call
        return None

    async def find_active_call(self) -> CallRecord | None:
        active = sorted(self._active(), key=lambda c: c.started_at, reverse=True)
        return active[0] if active else None

    async def count_active_calls(self) -> int:
        return len(self._active())

    async def list_active_calls_started_before(self, cutoff: datetime) -> list[CallRecord]:
        return sorted(
            (c for c in self._active() if c.started_at < cutoff),
            key=lambda c: c.started_at,
        )

    async def list_unextracted_calls_completed_since(self, ended_after: datetime, limit: int = 10) -> list[CallRecord]:
        calls = [
            c for c in self._call_records()
            if c.status.value == "completed"
            and c.ended_at is not None
            and c.ended_at >= ended_after
            and c.extracted_data is None
            and c.conversation_id
        ]
        return sorted(calls, key=lambda c: c.ended_at, reverse=True)[:limit]

    async def list_unextracted_calls_started_between(
        self, started_after: datetime, started_before: datetime, limit: int = 10
    ) -> list[CallRecord]:
        calls = [
            c for c in self._call_records()
            if started_after <= c.started_at < started_before
            and c.extracted_data is None
            and c.conversation_id
        ]
        return sorted(calls, key=lambda c: c.started_at)[:limit]

    async def list_ended_calls(self, limit: Optional[int] = None) -> list[CallRecord]:
        calls = sorted(
            (c for c in self._call_records() if c.ended_at is not None),
            key=lambda c: c.ended_at,
            reverse=True,
        )
        return calls[:limit] if limit is not None else calls

    async def count_calls_started_between(self, start: datetime, end: datetime) -> int:
        return sum(1 for c in self._call_records() if start <= c.started_at < end)

    async def insert_call(self, payload: dict[str, Any]) -> CallRecord:
        return self.add_call(**payload)

    async def update_call(self, call_id: str, updates: dict[str, Any]) -> CallRecord | None:
        updates = {k: v for k, v in updates.items() if k != "conversation_id"}
        self.call_updates.append((call_id, dict(updates)))
        if call_id not in self.calls:
            return None
        self.calls[call_id].update(updates)
        return CallRecord.model_validate(self.calls[call_id])

    # -- Claims --

    def _claim_records(self) -> list[ClaimRecord]:
        return [ClaimRecord.model_validate(row) for row in self.claims.values()]

    def _phone_matches(self, claim: ClaimRecord, phones: list[str]) -> bool:
        provider = self.providers.get(claim.provider_id or "")
        return bool(provider and provider.get("claims_phone_number") in phones)

    async def get_claim(self, claim_id: str) -> ClaimRecord | None:
        row = self.claims.get(claim_id)
        return ClaimRecord.model_validate(row) if row else None

    async def find_oldest_claim_with_status(self, claim_status: str) -> ClaimRecord | None:
        claims = sorted(
            (c for c in self._claim_records() if c.claim_status == claim_status),
            key=lambda c: c.created_at,
        )
        return claims[0] if claims else None

    async def find_oldest_uncalled_claim(self) -> ClaimRecord | None:
        claims = sorted(
            (c for c in self._claim_records() if c.called_at is None),
            key=lambda c: c.created_at,
        )
        return claims[0] if claims else None

    async def find_claim_by_phone_called_between(
        self, phones: list[str], start: datetime, end: datetime
    ) -> ClaimRecord | None:
        claims = sorted(
            (
                c for c in self._claim_records()
                if self._phone_matches(c, phones)
                and c.called_at is not None
                and start <= c.called_at <= end
            ),
            key=lambda c: c.called_at,
            reverse=True,
        )
        return claims[0] if claims else None

    async def find_latest_claim_by_phone(self, phones: list[str]) -> ClaimRecord | None:
        claims = sorted(
            (c for c in self._claim_records() if self._phone_matches(c, phones)),
            key=lambda c: c.created_at,
            reverse=True,
        )
        return claims[0] if claims else None

    async def update_claim(self, claim_id: str, updates: dict[str, Any]) -> ClaimRecord | None:
        self.claim_updates.append((claim_id, dict(updates)))
        if claim_id not in self.claims:
            return None
        self.claims[claim_id].update(updates)
        return ClaimRecord.model_validate(self.claims[claim_id])

    # -- Related rows --

    async def get_provider(self, provider_id: str) -> dict[str, Any] | None:
        return self.providers.get(provider_id)

    async def get_office(self, office_id: str) -> dict[str, Any] | None:
        return self.offices.get(office_id)

    async def get_doctor(self, doctor_id: str) -> dict[str, Any] | None:
        return self.doctors.get(doctor_id)

    # -- Denial reasons --

    async def list_denial_reasons(self, claim_id: str) -> list[DenialReasonRecord]:
        return [DenialReasonRecord.model_validate(r) for r in self.reasons_for(claim_id)]

    async def insert_denial_reasons(self, rows: list[dict[str, Any]]) -> list[DenialReasonRecord]:
        inserted = []
        for row in rows:
            reason_id = self.add_denial_reason(**row)
            inserted.append(DenialReasonRecord.model_validate(self.denial_reasons[reason_id]))
        return inserted

    async def get_denial_reason(self, denial_reason_id: str) -> DenialReasonRecord | None:
        row = self.denial_reasons.get(denial_reason_id)
        return DenialReasonRecord.model_validate(row) if row else None

    async def update_denial_reason(
        self, denial_reason_id: str, updates: dict[str, Any]
    ) -> DenialReasonRecord | None:
        if denial_reason_id not in self.denial_reasons:
            return None
        self.denial_reasons[denial_reason_id].update(updates)
        return DenialReasonRecord.model_validate(self.denial_reasons[denial_reason_id])

    async def delete_denial_reason(self, denial_reason_id: str) -> bool:
        return self.denial_reasons.pop(denial_reason_id, None) is not None

    # -- Voice settings --

    async def get_voice_settings(self) -> VoiceSettingsRecord | None:
        if not self.voice_settings:
            return None
        latest = max(self.voice_settings, key=lambda r: _parse(r["created_at"]))
        return VoiceSettingsRecord.model_validate(latest)

    async def create_voice_settings(self, enabled: bool) -> VoiceSettingsRecord:
        self.set_voice_enabled(enabled)
        return VoiceSettingsRecord.model_validate(self.voice_settings[-1])

    async def update_voice_settings(self, settings_id: str, enabled: bool) -> VoiceSettingsRecord:
        for row in self.voice_settings:
            if row["id"] == settings_id:
                row["enabled"] = enabled
                return VoiceSettingsRecord.model_validate(row)
        raise KeyError(settings_id)


def conversation_payload(status: str = "processing", turns: Optional[list] = None, **extra: Any) -> dict[str, Any]:
    """Provider conversation body as returned by GET /convai/conversations/{id}."""
    return {
        "conversation_id": extra.pop("conversation_id", "conv_1"),
        "status": status,
        "transcript": turns or [],
        **extra,
    }


class FakeRedis:
    """Just enough of redis.asyncio.Redis for SET NX EX and the lock scripts."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.set_calls: list[tuple[str, str, bool, Optional[int]]] = []

    async def set(self, key: str, value: str, nx: bool = False, ex: Optional[int] = None) -> Optional[bool]:
        self.set_calls.append((key, value, nx, ex))
        if nx and key in self.values:
            return None
        self.values[key] = value
        self.ttls[key] = ex
        return True

    async def eval(self, script: str, numkeys: int, key: str, token: str, *args: Any) -> int:
        if self.values.get(key) != token:
            return 0
        if "expire" in script:
            self.ttls[key] = int(args[0])
        else:
            del self.values[key]
        return 1

    def expire_now(self, key: str) -> None:
        self.values.pop(key, None)

    async def aclose(self) -> None:
        pass
