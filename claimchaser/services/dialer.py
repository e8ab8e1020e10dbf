"""
Dialer.

Starts the next outbound call while keeping the system at one active
call. Selection, agent preparation and the dial itself run under the
dispatch lock, and the active-call check is repeated inside the lock so
two concurrent triggers cannot both dial. The lease is refreshed before
each provider request; a lease that changed hands aborts the dispatch
before anything is dialed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from claimchaser.config import Settings
from claimchaser.db import ClaimStore
from claimchaser.exceptions import (
    ActiveCallExistsError,
    ClaimChaserError,
    ClaimNotDialableError,
    DispatchLockedError,
    DispatchLockLostError,
    NoClaimsAvailableError,
    VoiceProviderError,
)
from claimchaser.logging_config import get_logger
from claimchaser.schemas.call import CallRecord, CallStatus
from claimchaser.schemas.claim import ClaimRecord, ClaimStatus
from claimchaser.services.dispatch_lock import DispatchLease, DispatchLock
from claimchaser.services.prompt_builder import build_claim_prompt
from claimchaser.services.voice_client import ElevenLabsClient
from claimchaser.utils import normalize_phone, to_iso, utcnow

logger = get_logger(__name__)

# Claims are worked in this order, oldest first within each group
DIAL_PRIORITY = (ClaimStatus.DENIED, ClaimStatus.PENDING_RESUBMISSION)


class DispatchOutcome(str, Enum):
    DISPATCHED = "dispatched"
    ALREADY_ATTEMPTED = "already_attempted"
    VOICE_DISABLED = "voice_disabled"
    CALL_ACTIVE = "call_active"
    DISPATCH_LOCKED = "dispatch_locked"
    NO_CLAIMS = "no_claims"
    FAILED = "failed"


@dataclass
class DispatchResult:
    outcome: DispatchOutcome
    call: Optional[CallRecord] = None
    claim: Optional[ClaimRecord] = None
    error: Optional[str] = None

    @property
    def dispatched(self) -> bool:
        return self.outcome == DispatchOutcome.DISPATCHED


@dataclass
class SweepContext:
    """Per-sweep state threaded through reconciliation."""
    trace_id: str = ""
    dispatch_attempted: bool = False
    dispatched: bool = False
    checked: int = 0
    processed: int = 0
    completed: int = 0
    error_details: list[str] = field(default_factory=list)

    def record_error(self, call_id: str, message: str) -> None:
        self.error_details.append(f"Call {call_id}: {message}")


class Dialer:
    def __init__(
        self,
        store: ClaimStore,
        voice: ElevenLabsClient,
        lock: DispatchLock,
        settings: Settings,
    ):
        self._store = store
        self._voice = voice
        self._lock = lock
        self._settings = settings

    async def voice_enabled(self) -> bool:
        record = await self._store.get_voice_settings()
        return bool(record and record.enabled)

    async def try_start_next_call(self, sweep: Optional[SweepContext] = None) -> DispatchResult:
        """
        Automatic dispatch after a call concludes. Never raises.

        At most one attempt is made per sweep; the attempt only counts once
        the voice toggle and the active-call check have both passed.
        """
        if sweep is not None and sweep.dispatch_attempted:
            return DispatchResult(DispatchOutcome.ALREADY_ATTEMPTED)

        try:
            if not await self.voice_enabled():
                logger.debug("dispatch_skipped", reason="voice_disabled")
                return DispatchResult(DispatchOutcome.VOICE_DISABLED)

            active = await self._store.find_active_call()
            if active is not None:
                logger.debug("dispatch_skipped", reason="call_active", active_call_id=active.id)
                return DispatchResult(DispatchOutcome.CALL_ACTIVE, call=active)

            if sweep is not None:
                sweep.dispatch_attempted = True

            result = await self.dispatch()
        except ActiveCallExistsError:
            return DispatchResult(DispatchOutcome.CALL_ACTIVE)
        except DispatchLockedError:
            return DispatchResult(DispatchOutcome.DISPATCH_LOCKED)
        except NoClaimsAvailableError:
            logger.info("dispatch_skipped", reason="no_claims")
            return DispatchResult(DispatchOutcome.NO_CLAIMS)
        except Exception as e:
            logger.error("auto_dispatch_failed", error=str(e), error_type=type(e).__name__)
            return DispatchResult(DispatchOutcome.FAILED, error=str(e))

        if sweep is not None:
            sweep.dispatched = True
        return result

    async def dispatch(self) -> DispatchResult:
        """
        Select the next claim and dial it. Raises ``DispatchError`` subclasses.

        Does not consult the voice toggle; manual starts bypass it.
        """
        async with self._lock.hold() as lease:
            if not lease.acquired:
                raise DispatchLockedError()

            active = await self._store.find_active_call()
            if active is not None:
                raise ActiveCallExistsError(active.id)

            claim = await self._select_claim()
            if claim is None:
                raise NoClaimsAvailableError()

            return await self._dial(claim, lease)

    async def _select_claim(self) -> Optional[ClaimRecord]:
        for status in DIAL_PRIORITY:
            claim = await self._store.find_oldest_claim_with_status(status.value)
            if claim is not None:
                return claim
        return await self._store.find_oldest_uncalled_claim()

    async def _resolve_agent_id(self) -> str:
        if self._settings.elevenlabs_agent_id:
            return self._settings.elevenlabs_agent_id
        agent_id = await self._voice.find_agent_id(self._settings.elevenlabs_agent_name)
        if not agent_id:
            raise VoiceProviderError(
                f"No agent matching '{self._settings.elevenlabs_agent_name}' found"
            )
        return agent_id

    async def _resolve_phone_number_id(self) -> str:
        if self._settings.elevenlabs_phone_number_id:
            return self._settings.elevenlabs_phone_number_id
        phone_number_id = await self._voice.first_phone_number_id()
        if not phone_number_id:
            raise VoiceProviderError("No outbound phone number configured")
        return phone_number_id

    async def _keep_lock(self, lease: DispatchLease) -> None:
        if not await lease.refresh():
            raise DispatchLockLostError()

    async def _dial(self, claim: ClaimRecord, lease: DispatchLease) -> DispatchResult:
        if not claim.provider_id:
            raise ClaimNotDialableError("Claim does not have an associated provider")

        provider = await self._store.get_provider(claim.provider_id)
        if not provider:
            raise ClaimNotDialableError("Provider not found for this claim")
        if not provider.get("claims_phone_number"):
            raise ClaimNotDialableError("Provider does not have a claims phone number")

        office = await self._store.get_office(claim.office_id) if claim.office_id else None
        doctor = await self._store.get_doctor(claim.doctor_id) if claim.doctor_id else None

        to_number = normalize_phone(provider["claims_phone_number"])
        provider_name = provider.get("name") or claim.insurance_provider or "the insurance provider"

        await self._keep_lock(lease)
        agent_id = await self._resolve_agent_id()
        await self._keep_lock(lease)
        phone_number_id = await self._resolve_phone_number_id()

        prompt = build_claim_prompt(
            self._settings, claim, provider_name, to_number, office=office, doctor=doctor
        )
        await self._keep_lock(lease)
        try:
            await self._voice.update_agent_prompt(agent_id, prompt)
        except ClaimChaserError as e:
            # The agent keeps its previous prompt; the call can still go out
            logger.warning("agent_prompt_update_failed", agent_id=agent_id, error=e.message)

        await self._keep_lock(lease)
        response = await self._voice.create_outbound_call(agent_id, phone_number_id, to_number)
        if not response.success:
            raise VoiceProviderError(response.message or "Outbound call was not accepted")

        now = utcnow()
        call = await self._store.insert_call({
            "claim_id": claim.id,
            "conversation_id": response.conversation_id,
            "call_sid": response.call_sid,
            "to_number": to_number,
            "status": CallStatus.INITIATED.value,
            "started_at": to_iso(now),
        })
        await self._store.update_claim(claim.id, {"called_at": to_iso(now)})

        logger.info(
            "call_dispatched",
            call_id=call.id,
            claim_id=claim.id,
            conversation_id=response.conversation_id,
            to_number=to_number,
        )
        return DispatchResult(DispatchOutcome.DISPATCHED, call=call, claim=claim)
