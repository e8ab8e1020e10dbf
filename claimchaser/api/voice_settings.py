"""
API Router: Voice toggle.

Turning voice on lets completed calls chain into the next dial
automatically; turning it off stops the chain after the current call.
"""

from __future__ import annotations

from fastapi import APIRouter

from claimchaser.api.dependencies import OrchestratorDep
from claimchaser.schemas.voice import VoiceSettingsResponse, VoiceSettingsUpdate

router = APIRouter(prefix="/voice-settings", tags=["Voice Settings"])


@router.get("", response_model=VoiceSettingsResponse)
async def get_voice_settings(orchestrator: OrchestratorDep) -> VoiceSettingsResponse:
    record = await orchestrator.get_voice_settings()
    return VoiceSettingsResponse(enabled=record.enabled)


@router.post("", response_model=VoiceSettingsResponse)
async def update_voice_settings(
    body: VoiceSettingsUpdate,
    orchestrator: OrchestratorDep,
) -> VoiceSettingsResponse:
    record = await orchestrator.set_voice_enabled(body.enabled)
    return VoiceSettingsResponse(enabled=record.enabled)
