"""
Denial Reason Service.

Recording denial reasons against a claim, from a transcript or typed in
by staff, and dashboard-side edits to them. Status
follows the lifecycle dates: an accepted date forces Accepted, a
resubmitted date forces Resubmitted, and an explicit status is honored
only when neither date is set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from claimchaser.db import ClaimStore
from claimchaser.exceptions import ClaimNotFoundError, DenialReasonNotFoundError, ValidationError
from claimchaser.logging_config import get_logger
from claimchaser.schemas.claim import (
    ClaimRecord,
    ClaimStatus,
    DenialReasonRecord,
    DenialReasonStatus,
    DenialReasonsAdd,
    DenialReasonUpdate,
    derive_denial_status,
)
from claimchaser.services.transcript_extraction import (
    dedupe_reasons,
    is_valid_reason,
    normalize_reason,
    split_reasons,
    strip_filler,
)
from claimchaser.utils import utcnow

logger = get_logger(__name__)

_DATE_FIELDS = ("date_reason_resubmitted", "date_accepted")


@dataclass
class RecordedReasons:
    claim: ClaimRecord
    inserted: list[DenialReasonRecord] = field(default_factory=list)
    claim_status_changed: bool = False


async def list_for_claim(store: ClaimStore, claim_id: str) -> list[DenialReasonRecord]:
    if await store.get_claim(claim_id) is None:
        raise ClaimNotFoundError(f"Claim {claim_id} not found")
    return await store.list_denial_reasons(claim_id)


def _requested_status(value: str) -> DenialReasonStatus:
    try:
        return DenialReasonStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in DenialReasonStatus)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}") from None


def resolve_status(
    current: DenialReasonRecord, update: DenialReasonUpdate
) -> DenialReasonStatus | None:
    """
    Status to write for ``update`` applied on top of ``current``.

    Returns None when the status column should be left untouched.
    """
    sent = update.sent_fields()
    merged = {name: sent.get(name, getattr(current, name)) for name in _DATE_FIELDS}

    forced = derive_denial_status(merged["date_reason_resubmitted"], merged["date_accepted"])
    requested = _requested_status(update.status) if update.status is not None else None

    if forced is not None:
        return forced
    if requested is not None:
        return requested
    if any(name in sent for name in _DATE_FIELDS):
        # Both dates cleared
        return DenialReasonStatus.PENDING
    return None


async def update_denial_reason(
    store: ClaimStore, denial_reason_id: str, update: DenialReasonUpdate
) -> DenialReasonRecord:
    current = await store.get_denial_reason(denial_reason_id)
    if current is None:
        raise DenialReasonNotFoundError(f"Denial reason {denial_reason_id} not found")

    payload: dict[str, Any] = {
        name: value.isoformat() if hasattr(value, "isoformat") else value
        for name, value in update.sent_fields().items()
    }
    status = resolve_status(current, update)
    if status is not None:
        payload["status"] = status.value

    if not payload:
        raise ValidationError("No fields to update")

    updated = await store.update_denial_reason(denial_reason_id, payload)
    if updated is None:
        raise DenialReasonNotFoundError(f"Denial reason {denial_reason_id} not found")

    logger.info(
        "denial_reason_updated",
        denial_reason_id=denial_reason_id,
        fields=sorted(payload),
        status=updated.status.value,
    )
    return updated


async def delete_denial_reason(store: ClaimStore, denial_reason_id: str) -> None:
    if await store.get_denial_reason(denial_reason_id) is None:
        raise DenialReasonNotFoundError(f"Denial reason {denial_reason_id} not found")
    await store.delete_denial_reason(denial_reason_id)
    logger.info("denial_reason_deleted", denial_reason_id=denial_reason_id)


async def _unseen(store: ClaimStore, claim_id: str, reasons: list[str]) -> list[str]:
    existing = {normalize_reason(r.denial_reason) for r in await store.list_denial_reasons(claim_id)}
    fresh = []
    for reason in reasons:
        key = normalize_reason(reason)
        if key in existing:
            continue
        existing.add(key)
        fresh.append(reason)
    return fresh


async def record_reasons(
    store: ClaimStore,
    claim: ClaimRecord,
    reasons: list[str],
    next_steps: Optional[str] = None,
) -> RecordedReasons:
    """
    Insert the reasons not yet stored for ``claim`` as Pending and update
    the claim.

    A Denied claim moves to Pending Resubmission once at least one reason
    was inserted. ``next_steps``, when given, replaces the claim's next
    steps either way.
    """
    today = utcnow().date().isoformat()
    rows = [
        {
            "claim_id": claim.id,
            "denial_reason": reason,
            "status": DenialReasonStatus.PENDING.value,
            "date_recorded": today,
        }
        for reason in await _unseen(store, claim.id, reasons)
    ]
    result = RecordedReasons(claim=claim, inserted=await store.insert_denial_reasons(rows))

    claim_updates: dict[str, Any] = {}
    if result.inserted and claim.claim_status == ClaimStatus.DENIED.value:
        claim_updates["claim_status"] = ClaimStatus.PENDING_RESUBMISSION.value
        result.claim_status_changed = True
    if next_steps:
        claim_updates["next_steps"] = next_steps

    if claim_updates:
        result.claim = await store.update_claim(claim.id, claim_updates) or claim
    return result


async def add_reasons(store: ClaimStore, claim_id: str, body: DenialReasonsAdd) -> RecordedReasons:
    """Record reasons typed in by staff, one or several per line."""
    text = (body.denial_reason or "").strip()
    if not text:
        raise ValidationError("Denial reason is required")

    reasons = dedupe_reasons(
        reason
        for line in text.splitlines()
        for reason in split_reasons(strip_filler(line))
        if is_valid_reason(reason)
    )
    if not reasons:
        raise ValidationError("Invalid denial reason format - no valid denial reasons found")

    claim = await store.get_claim(claim_id)
    if claim is None:
        raise ClaimNotFoundError(f"Claim {claim_id} not found")

    if not await _unseen(store, claim_id, reasons):
        raise ValidationError("All denial reasons already exist for this claim")

    next_steps = (body.next_steps or "").strip() or None
    result = await record_reasons(store, claim, reasons, next_steps)
    logger.info(
        "denial_reasons_added",
        claim_id=claim_id,
        inserted=len(result.inserted),
        status_changed=result.claim_status_changed,
    )
    return result
