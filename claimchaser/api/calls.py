"""
API Router: Call Management Endpoints.

Manual dispatch, explicit end-call, transcript processing and the
read-side views the dashboard polls.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Query

from claimchaser.api.dependencies import OrchestratorDep
from claimchaser.logging_config import get_logger
from claimchaser.schemas.call import (
    CallStats,
    EndCallRequest,
    EndCallResult,
    ProcessTranscriptRequest,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/calls", tags=["Calls"])


@router.post("/make")
async def make_call(orchestrator: OrchestratorDep) -> dict[str, Any]:
    """Dial the next eligible claim now, regardless of the voice toggle."""
    result = await orchestrator.start_call()
    call = result.call
    return {
        "success": True,
        "message": f"Call initiated for claim {result.claim.id}" if result.claim else "Call initiated",
        "call_id": call.id if call else None,
        "conversation_id": call.conversation_id if call else None,
        "claim_id": result.claim.id if result.claim else None,
    }


@router.post("/end", response_model=EndCallResult)
async def end_call(
    orchestrator: OrchestratorDep,
    body: Optional[EndCallRequest] = None,
) -> EndCallResult:
    """End a call by id or conversation id; with neither, the current active call."""
    body = body or EndCallRequest()
    return await orchestrator.end_call(body.call_id, body.conversation_id)


@router.post("/process-transcript")
async def process_transcript(
    body: ProcessTranscriptRequest,
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    result = await orchestrator.process_transcript(body.conversation_id, body.call_id)
    return {
        "success": True,
        "conversation_id": result.conversation_id,
        "call_id": result.call_id,
        "claim_id": result.claim_id,
        "extracted_data": result.extracted_data.model_dump(),
        "inserted_reasons": result.inserted_reasons,
    }


@router.get("/active")
async def active_call(orchestrator: OrchestratorDep) -> dict[str, Any]:
    view = await orchestrator.get_active_call()
    if view is None:
        return {"active": False, "call": None}
    return {"active": True, **view.model_dump(mode="json")}


@router.get("/recent")
async def recent_calls(
    orchestrator: OrchestratorDep,
    limit: int = Query(default=10, ge=1, le=100),
) -> dict[str, Any]:
    views = await orchestrator.recent_calls(limit)
    return {
        "data": [view.model_dump(mode="json") for view in views],
        "total": len(views),
    }


@router.get("/stats", response_model=CallStats)
async def call_stats(orchestrator: OrchestratorDep) -> CallStats:
    return await orchestrator.call_stats()
