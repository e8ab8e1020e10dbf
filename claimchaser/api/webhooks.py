"""
API Router: ElevenLabs webhook.

Webhooks are a shortcut, not the source of truth: a missed or duplicated
event is caught by the next reconciliation sweep.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from claimchaser.api.dependencies import OrchestratorDep
from claimchaser.logging_config import get_logger
from claimchaser.schemas.call import WebhookEvent

logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/elevenlabs")
async def elevenlabs_webhook(event: WebhookEvent, orchestrator: OrchestratorDep) -> dict[str, Any]:
    result = await orchestrator.handle_webhook(event)
    if result is None:
        return {
            "success": True,
            "message": "Call not yet completed, will process when completed",
        }

    return {
        "success": True,
        "message": "Call processed successfully",
        "conversation_id": result.conversation_id,
        "call_id": result.call_id,
        "claim_id": result.claim_id,
        "extracted_data": result.extracted_data.model_dump(),
    }


@router.get("/elevenlabs")
async def verify_webhook() -> dict[str, str]:
    return {"status": "ok", "message": "ElevenLabs webhook endpoint is active"}
