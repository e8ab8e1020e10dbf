"""
Transcript Processor.

Fetches a conversation transcript, extracts denial information, and
applies it to the call and its claim. Safe to run repeatedly for the same
call: denial reasons already stored for the claim are never inserted
twice, and an already completed call keeps its original ``ended_at``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from claimchaser.db import ClaimStore
from claimchaser.exceptions import CallNotFoundError, TranscriptNotReadyError, ValidationError
from claimchaser.logging_config import get_logger
from claimchaser.schemas.call import CallRecord, CallStatus, ExtractedData
from claimchaser.schemas.conversation import ConversationState
from claimchaser.services import denial_reasons
from claimchaser.services.claim_resolver import ClaimResolver
from claimchaser.services.transcript_extraction import extract
from claimchaser.services.voice_client import ElevenLabsClient
from claimchaser.utils import to_iso, utcnow

logger = get_logger(__name__)


@dataclass
class ProcessingResult:
    conversation_id: str
    call_id: Optional[str]
    claim_id: Optional[str]
    extracted_data: ExtractedData
    inserted_reasons: list[str] = field(default_factory=list)
    claim_status_changed: bool = False


class TranscriptProcessor:
    def __init__(
        self,
        store: ClaimStore,
        voice: ElevenLabsClient,
        resolver: ClaimResolver,
        retry_delay_seconds: float = 1.0,
    ):
        self._store = store
        self._voice = voice
        self._resolver = resolver
        self._retry_delay = retry_delay_seconds

    async def _fetch_with_retry(
        self, conversation_id: str, conversation: Optional[ConversationState]
    ) -> ConversationState:
        if conversation is None:
            conversation = await self._voice.fetch_conversation(conversation_id)
        if conversation.turns:
            return conversation

        # Transcripts can lag the end of the call by a moment
        await asyncio.sleep(self._retry_delay)
        conversation = await self._voice.fetch_conversation(conversation_id)
        if not conversation.turns:
            raise TranscriptNotReadyError(conversation_id)
        return conversation

    async def process(
        self,
        conversation_id: Optional[str] = None,
        call_id: Optional[str] = None,
        conversation: Optional[ConversationState] = None,
    ) -> ProcessingResult:
        """
        Process one call's transcript.

        ``conversation`` may carry an already fetched conversation so a
        sweep does not fetch it twice.
        """
        call = await self._resolver.locate_call(call_id, conversation_id)
        if call_id and call is None:
            raise CallNotFoundError(f"Call {call_id} not found")

        conversation_id = conversation_id or (call.conversation_id if call else None)
        if not conversation_id:
            raise ValidationError("conversation_id is required (call has no conversation)")

        conversation = await self._fetch_with_retry(conversation_id, conversation)
        extracted = extract(conversation.turns)

        logger.info(
            "transcript_extracted",
            conversation_id=conversation_id,
            call_id=call.id if call else None,
            turns=len(conversation.turns),
            denial_reasons=len(extracted.denial_reasons),
            has_next_steps=extracted.next_steps is not None,
        )

        if call is None:
            logger.warning("call_record_missing", conversation_id=conversation_id)
            return ProcessingResult(conversation_id, None, None, extracted)

        await self._update_call(call, conversation, extracted)

        claim_id = await self._resolver.resolve(call)
        result = ProcessingResult(conversation_id, call.id, claim_id, extracted)
        if claim_id is None:
            return result

        await self._apply_to_claim(claim_id, extracted, result)
        return result

    async def _update_call(
        self, call: CallRecord, conversation: ConversationState, extracted: ExtractedData
    ) -> None:
        updates: dict = {
            "transcript": conversation.raw,
            "extracted_data": extracted.to_row(),
        }
        if call.status != CallStatus.COMPLETED:
            updates["status"] = CallStatus.COMPLETED.value
            updates["ended_at"] = to_iso(conversation.ended_at or utcnow())
        await self._store.update_call(call.id, updates)

    async def _apply_to_claim(
        self, claim_id: str, extracted: ExtractedData, result: ProcessingResult
    ) -> None:
        claim = await self._store.get_claim(claim_id)
        if claim is None:
            logger.warning("claim_unresolved", claim_id=claim_id, reason="claim_missing")
            result.claim_id = None
            return

        recorded = await denial_reasons.record_reasons(
            self._store, claim, extracted.denial_reasons, extracted.next_steps
        )
        result.inserted_reasons = [r.denial_reason for r in recorded.inserted]
        result.claim_status_changed = recorded.claim_status_changed

        logger.info(
            "claim_updated_from_transcript",
            claim_id=claim_id,
            inserted=len(recorded.inserted),
            status_changed=result.claim_status_changed,
        )
