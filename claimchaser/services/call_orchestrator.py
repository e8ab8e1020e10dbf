"""
Call Orchestrator Service.

Facade over the call lifecycle: reconciliation sweeps, explicit end-call,
transcript processing, manual and automatic dispatch, and the read-side
views the dashboard polls (active call, recent calls, stats). The HTTP
API, the reconcile worker and the scripts all go through this class.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Optional

import httpx

from claimchaser.config import Settings, get_settings
from claimchaser.db import ClaimStore, get_db
from claimchaser.exceptions import CallNotFoundError, RateLimitError, ValidationError, VoiceProviderError
from claimchaser.logging_config import get_logger
from claimchaser.schemas.call import (
    ActiveCallView,
    CallRecord,
    CallStats,
    CallStatus,
    ClaimSummary,
    EndCallResult,
    RecentCallView,
    SweepSummary,
    WebhookEvent,
)
from claimchaser.schemas.voice import VoiceSettingsRecord
from claimchaser.services.call_reconciler import CallReconciler
from claimchaser.services.call_terminator import CallTerminator
from claimchaser.services.claim_resolver import ClaimResolver
from claimchaser.services.completion import evaluate_completion
from claimchaser.services.dialer import Dialer, DispatchResult
from claimchaser.services.dispatch_lock import DispatchLock, create_dispatch_lock
from claimchaser.services.transcript_processor import ProcessingResult, TranscriptProcessor
from claimchaser.services.voice_client import ElevenLabsClient
from claimchaser.utils import format_duration, to_iso, utcnow

logger = get_logger(__name__)

ACTIVE_CHECK_MIN_AGE = timedelta(seconds=30)


class CallOrchestrator:
    """
    Wires the lifecycle components together around one store and one
    provider client. Holds no call or claim state between operations.
    """

    def __init__(
        self,
        store: ClaimStore,
        voice: ElevenLabsClient,
        lock: DispatchLock,
        settings: Settings,
    ) -> None:
        self.store = store
        self.voice = voice
        self.lock = lock
        self.settings = settings

        self.terminator = CallTerminator(voice)
        self.resolver = ClaimResolver(store, settings.claim_match_window_hours)
        self.processor = TranscriptProcessor(
            store, voice, self.resolver, settings.transcript_retry_delay_seconds
        )
        self.dialer = Dialer(store, voice, lock, settings)
        self.reconciler = CallReconciler(
            store, voice, self.terminator, self.processor, self.dialer, settings
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, store: ClaimStore, http_client: httpx.AsyncClient, lock: DispatchLock
    ) -> "CallOrchestrator":
        voice = ElevenLabsClient(
            http_client,
            settings.elevenlabs_api_key,
            base_url=settings.elevenlabs_base_url,
            timeout=settings.voice_http_timeout_seconds,
        )
        return cls(store, voice, lock, settings)

    # -- Reconciliation --

    async def run_sweep(self) -> SweepSummary:
        return await self.reconciler.run_sweep()

    # -- Explicit end --

    async def end_call(
        self, call_id: Optional[str] = None, conversation_id: Optional[str] = None
    ) -> EndCallResult:
        """
        End a call now: best-effort remote hangup, then local completion.

        With neither id given, the most recent active call is ended.
        """
        call = await self.resolver.locate_call(call_id, conversation_id)
        if call is None and not call_id and not conversation_id:
            call = await self.store.find_active_call()
        if call is None:
            raise CallNotFoundError("No matching call found")

        result = EndCallResult(call_id=call.id, conversation_id=call.conversation_id)

        if call.conversation_id and call.is_active:
            termination = await self.terminator.terminate(call.conversation_id, call.call_sid)
            result.terminated = termination.terminated
            result.strategy = termination.strategy

        if call.status == CallStatus.COMPLETED and call.ended_at is not None:
            result.already_completed = True
        else:
            await self.store.update_call(call.id, {
                "status": CallStatus.COMPLETED.value,
                "ended_at": to_iso(utcnow()),
            })
            logger.info("call_completed", call_id=call.id, reason="explicit_end")

        dispatch = await self.dialer.try_start_next_call()
        result.dispatched = dispatch.dispatched
        return result

    # -- Transcript --

    async def process_transcript(
        self, conversation_id: Optional[str] = None, call_id: Optional[str] = None
    ) -> ProcessingResult:
        if not conversation_id and not call_id:
            raise ValidationError("conversation_id or call_id is required")
        return await self.processor.process(conversation_id, call_id)

    async def handle_webhook(self, event: WebhookEvent) -> Optional[ProcessingResult]:
        """
        Process a provider webhook. Non-completion events are acknowledged
        without side effects; completion events are processed and followed
        by a dispatch attempt whose failure never fails the webhook.
        """
        if not event.conversation_id:
            raise ValidationError("conversation_id is required")

        if not event.is_completion:
            logger.info(
                "webhook_ignored",
                conversation_id=event.conversation_id,
                status=event.status,
                event_type=event.event_type,
            )
            return None

        result = await self.processor.process(event.conversation_id)
        await self.dialer.try_start_next_call()
        return result

    # -- Dispatch --

    async def start_call(self) -> DispatchResult:
        """Manual dispatch. Ignores the voice toggle and raises on failure."""
        return await self.dialer.dispatch()

    async def try_start_next_call(self) -> DispatchResult:
        return await self.dialer.try_start_next_call()

    # -- Voice toggle --

    async def get_voice_settings(self) -> VoiceSettingsRecord:
        record = await self.store.get_voice_settings()
        if record is None:
            record = await self.store.create_voice_settings(enabled=False)
            logger.info("voice_settings_created", enabled=False)
        return record

    async def set_voice_enabled(self, enabled: bool) -> VoiceSettingsRecord:
        record = await self.store.get_voice_settings()
        if record is None:
            record = await self.store.create_voice_settings(enabled=enabled)
        else:
            record = await self.store.update_voice_settings(record.id, enabled)
        logger.info("voice_settings_updated", enabled=enabled)
        return record

    # -- Dashboard views --

    async def _claim_summary(self, claim_id: Optional[str]) -> Optional[ClaimSummary]:
        if not claim_id:
            return None
        claim = await self.store.get_claim(claim_id)
        return ClaimSummary.model_validate(claim.model_dump()) if claim else None

    async def _remote_completion(
        self, call: CallRecord, age: timedelta
    ) -> Optional[tuple[str, Optional[datetime]]]:
        """Completion reason and remote end time, or None while the provider still has the call live."""
        try:
            conversation = await self.voice.fetch_conversation(call.conversation_id)
        except VoiceProviderError as e:
            missing_for = timedelta(seconds=self.settings.missing_conversation_timeout_seconds)
            if e.provider_status == 404 and age > missing_for:
                return "conversation_not_found", None
            logger.info("conversation_fetch_skipped", conversation_id=call.conversation_id, error=e.message)
            return None
        except RateLimitError as e:
            logger.info("conversation_fetch_skipped", conversation_id=call.conversation_id, error=e.message)
            return None

        reason = evaluate_completion(call, conversation)
        return (reason, conversation.ended_at) if reason else None

    async def get_active_call(self) -> Optional[ActiveCallView]:
        """
        The current active call, if any.

        Calls older than ``ACTIVE_CHECK_MIN_AGE`` are confirmed with the
        provider first. One the provider reports as over, one past the
        maximum duration, and one whose conversation has been missing for
        longer than the missing-conversation timeout are completed here and
        reported as no active call. Their transcripts are left to the next
        reconcile sweep.
        """
        call = await self.store.find_active_call()
        if call is None:
            return None

        now = utcnow()
        age = call.age(now)
        if age > timedelta(seconds=self.settings.max_call_duration_seconds):
            if call.conversation_id:
                await self.terminator.terminate(call.conversation_id, call.call_sid)
            await self._complete(call, now, "max_duration_exceeded")
            return None

        if call.conversation_id and age > ACTIVE_CHECK_MIN_AGE:
            remote = await self._remote_completion(call, age)
            if remote is not None:
                reason, ended_at = remote
                await self._complete(call, ended_at or now, reason)
                return None

        return ActiveCallView(
            call=call,
            claim=await self._claim_summary(call.claim_id),
            duration=format_duration(age.total_seconds()),
        )

    async def _complete(self, call: CallRecord, ended_at: datetime, reason: str) -> None:
        await self.store.update_call(call.id, {
            "status": CallStatus.COMPLETED.value,
            "ended_at": to_iso(ended_at),
        })
        logger.info("call_completed", call_id=call.id, reason=reason)

    async def recent_calls(self, limit: int = 10) -> list[RecentCallView]:
        calls = await self.store.list_ended_calls(limit)
        views = []
        for call in calls:
            views.append(RecentCallView(
                call=call,
                claim=await self._claim_summary(call.claim_id),
                duration=_duration(call),
            ))
        return views

    async def call_stats(self) -> CallStats:
        now = utcnow()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        active = await self.store.count_active_calls()
        today = await self.store.count_calls_started_between(day_start, day_start + timedelta(days=1))
        ended = await self.store.list_ended_calls()

        stats = CallStats(active_calls=active, today=today)
        if ended:
            total = sum(_seconds(call) for call in ended)
            stats.avg_duration = format_duration(total / len(ended))
            successful = [c for c in ended if c.has_extracted_data or c.status == CallStatus.COMPLETED]
            stats.success_rate = round(len(successful) / len(ended) * 100)
        return stats


def _seconds(call: CallRecord) -> float:
    if call.ended_at is None:
        return 0.0
    return max((call.ended_at - call.started_at).total_seconds(), 0.0)


def _duration(call: CallRecord) -> str:
    return format_duration(_seconds(call))


@asynccontextmanager
async def open_orchestrator(settings: Optional[Settings] = None) -> AsyncIterator[CallOrchestrator]:
    """Standalone orchestrator for workers and scripts; closes its client and lock on exit."""
    settings = settings or get_settings()
    lock = create_dispatch_lock(settings.redis_url, settings.dispatch_lock_ttl_seconds)
    async with httpx.AsyncClient(timeout=settings.voice_http_timeout_seconds) as client:
        try:
            yield CallOrchestrator.from_settings(settings, get_db(), client, lock)
        finally:
            await lock.close()
