"""
API Router: Denial Reasons.

List the denial reasons recorded for a claim, record new ones typed in by
staff, and edit or remove them.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from claimchaser.api.dependencies import OrchestratorDep
from claimchaser.schemas.claim import DenialReasonRecord, DenialReasonsAdd, DenialReasonUpdate
from claimchaser.services import denial_reasons

router = APIRouter(tags=["Denial Reasons"])


@router.get("/claims/{claim_id}/denial-reasons")
async def list_denial_reasons(claim_id: str, orchestrator: OrchestratorDep) -> dict[str, Any]:
    reasons = await denial_reasons.list_for_claim(orchestrator.store, claim_id)
    return {
        "data": [reason.model_dump(mode="json") for reason in reasons],
        "total": len(reasons),
    }


@router.post("/claims/{claim_id}/update-denial-reasons")
async def add_denial_reasons(
    claim_id: str,
    body: DenialReasonsAdd,
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    recorded = await denial_reasons.add_reasons(orchestrator.store, claim_id, body)
    inserted = [reason.model_dump(mode="json") for reason in recorded.inserted]
    return {
        "success": True,
        "claim": recorded.claim.model_dump(mode="json"),
        "denial_reason": inserted[0],
        "denial_reasons": inserted,
    }


@router.patch("/denial-reasons/{denial_reason_id}", response_model=DenialReasonRecord)
async def update_denial_reason(
    denial_reason_id: str,
    body: DenialReasonUpdate,
    orchestrator: OrchestratorDep,
) -> DenialReasonRecord:
    return await denial_reasons.update_denial_reason(orchestrator.store, denial_reason_id, body)


@router.delete("/denial-reasons/{denial_reason_id}")
async def delete_denial_reason(denial_reason_id: str, orchestrator: OrchestratorDep) -> dict[str, Any]:
    await denial_reasons.delete_denial_reason(orchestrator.store, denial_reason_id)
    return {"success": True, "id": denial_reason_id}
