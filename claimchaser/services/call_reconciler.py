"""
Call Reconciler.

One polling sweep over calls whose local state may lag the provider.
Provider webhooks are not trusted on their own, so every sweep re-reads
the remote conversation for each candidate, decides whether the call is
over, persists the terminal state, extracts the transcript and hands off
to the dialer.

A failure for one candidate never aborts the sweep; it is recorded in the
summary and the next candidate is processed.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from claimchaser.config import Settings
from claimchaser.db import ClaimStore
from claimchaser.exceptions import RateLimitError, VoiceProviderError
from claimchaser.logging_config import call_id_var, generate_trace_id, get_logger, trace_id_var
from claimchaser.schemas.call import CallRecord, CallStatus, SweepSummary
from claimchaser.services.call_terminator import CallTerminator
from claimchaser.services.completion import evaluate_completion
from claimchaser.services.dialer import Dialer, SweepContext
from claimchaser.services.transcript_processor import TranscriptProcessor
from claimchaser.services.voice_client import ElevenLabsClient
from claimchaser.utils import to_iso, utcnow

logger = get_logger(__name__)


class CallReconciler:
    def __init__(
        self,
        store: ClaimStore,
        voice: ElevenLabsClient,
        terminator: CallTerminator,
        processor: TranscriptProcessor,
        dialer: Dialer,
        settings: Settings,
    ):
        self._store = store
        self._voice = voice
        self._terminator = terminator
        self._processor = processor
        self._dialer = dialer
        self._settings = settings

    async def collect_candidates(self, now: datetime) -> list[CallRecord]:
        """Stale active calls, then recently completed and recently started calls lacking extraction."""
        s = self._settings
        grace_cutoff = now - timedelta(seconds=s.reconcile_grace_seconds)

        stale = await self._store.list_active_calls_started_before(grace_cutoff)
        recent_completed = await self._store.list_unextracted_calls_completed_since(
            now - timedelta(seconds=s.recent_completed_window_seconds)
        )
        recent_started = await self._store.list_unextracted_calls_started_between(
            now - timedelta(seconds=s.recent_started_window_seconds), grace_cutoff
        )

        candidates: dict[str, CallRecord] = {}
        for call in stale:
            candidates.setdefault(call.id, call)
        for call in (*recent_completed, *recent_started):
            if call.conversation_id and not call.has_extracted_data:
                candidates.setdefault(call.id, call)
        return list(candidates.values())

    async def run_sweep(self) -> SweepSummary:
        trace_token = trace_id_var.set(generate_trace_id())
        sweep = SweepContext(trace_id=trace_id_var.get())
        now = utcnow()

        try:
            candidates = await self.collect_candidates(now)
            sweep.checked = len(candidates)
            logger.info("sweep_started", candidates=len(candidates))

            for call in candidates:
                token = call_id_var.set(call.id)
                try:
                    await self._reconcile(call, sweep, now)
                except Exception as e:
                    sweep.record_error(call.id, str(e))
                    logger.error(
                        "reconcile_call_failed",
                        conversation_id=call.conversation_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                finally:
                    call_id_var.reset(token)

            await self._dialer.try_start_next_call(sweep)
        finally:
            trace_id_var.reset(trace_token)

        summary = SweepSummary(
            success=True,
            message=(
                f"Checked {sweep.checked} calls, processed {sweep.processed}, "
                f"completed {sweep.completed}, {len(sweep.error_details)} errors"
            ),
            checked=sweep.checked,
            processed=sweep.processed,
            completed=sweep.completed,
            errors=len(sweep.error_details),
            error_details=sweep.error_details,
            dispatched=sweep.dispatched,
        )
        logger.info(
            "sweep_finished",
            checked=summary.checked,
            processed=summary.processed,
            completed=summary.completed,
            errors=summary.errors,
            dispatched=summary.dispatched,
        )
        return summary

    async def _force_complete(self, call: CallRecord, ended_at: datetime, reason: str) -> CallRecord:
        updated = await self._store.update_call(call.id, {
            "status": CallStatus.COMPLETED.value,
            "ended_at": to_iso(ended_at),
        })
        logger.info("call_completed", reason=reason)
        return updated or call.model_copy(update={"status": CallStatus.COMPLETED, "ended_at": ended_at})

    async def _reconcile(self, call: CallRecord, sweep: SweepContext, now: datetime) -> None:
        s = self._settings
        age = call.age(now)

        if not call.conversation_id:
            if call.is_active and age > timedelta(seconds=s.missing_conversation_timeout_seconds):
                await self._force_complete(call, now, "missing_conversation_timeout")
                sweep.completed += 1
                await self._dialer.try_start_next_call(sweep)
            return

        if call.is_active and age > timedelta(seconds=s.max_call_duration_seconds):
            await self._terminator.terminate(call.conversation_id, call.call_sid)
            call = await self._force_complete(call, now, "max_duration_exceeded")
            sweep.completed += 1
            await self._dialer.try_start_next_call(sweep)
            if not call.has_extracted_data:
                await self._processor.process(call.conversation_id, call.id)
                sweep.processed += 1
            return

        try:
            conversation = await self._voice.fetch_conversation(call.conversation_id)
        except (VoiceProviderError, RateLimitError) as e:
            logger.info("conversation_fetch_skipped", conversation_id=call.conversation_id, error=e.message)
            return

        reason = evaluate_completion(call, conversation)
        if reason is None:
            if call.status == CallStatus.INITIATED and conversation.has_activity:
                await self._store.update_call(call.id, {"status": CallStatus.IN_PROGRESS.value})
                logger.info("call_in_progress", conversation_id=call.conversation_id)
            return

        if call.status != CallStatus.COMPLETED:
            call = await self._force_complete(call, conversation.ended_at or now, reason)
            sweep.completed += 1

        await self._dialer.try_start_next_call(sweep)

        if not call.has_extracted_data:
            await self._processor.process(call.conversation_id, call.id, conversation=conversation)
            sweep.processed += 1
