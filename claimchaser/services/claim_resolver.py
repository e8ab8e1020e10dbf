"""
Claim Resolver.

Works out which claim a call belongs to. The call row normally carries
``claim_id``, but older rows and calls created outside the dialer do not,
so the resolver falls back to matching the dialed number against provider
claims phone numbers.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from claimchaser.db import ClaimStore
from claimchaser.logging_config import get_logger
from claimchaser.schemas.call import CallRecord
from claimchaser.utils import phone_variants

logger = get_logger(__name__)


class ClaimResolver:
    def __init__(self, store: ClaimStore, match_window_hours: float = 2.0):
        self._store = store
        self._window = timedelta(hours=match_window_hours)

    async def locate_call(
        self, call_id: Optional[str] = None, conversation_id: Optional[str] = None
    ) -> Optional[CallRecord]:
        """Find a call by id, falling back to its conversation id."""
        call = None
        if call_id:
            call = await self._store.get_call(call_id)
        if call is None and conversation_id:
            call = await self._store.get_call_by_conversation(conversation_id)
        return call

    async def resolve(self, call: CallRecord) -> Optional[str]:
        """
        Return the claim id for ``call``, persisting it when it was inferred.

        Order: the call's own claim_id, then a provider phone match whose
        ``called_at`` falls within the window around the call start (most
        recent wins), then the newest claim with a matching provider phone.
        """
        if call.claim_id:
            return call.claim_id

        if not call.to_number:
            logger.warning("claim_unresolved", call_id=call.id, reason="no_to_number")
            return None

        phones = phone_variants(call.to_number)
        claim = await self._store.find_claim_by_phone_called_between(
            phones,
            call.started_at - self._window,
            call.started_at + self._window,
        )
        method = "phone_and_time"

        if claim is None:
            claim = await self._store.find_latest_claim_by_phone(phones)
            method = "phone_latest"

        if claim is None:
            logger.warning("claim_unresolved", call_id=call.id, to_number=call.to_number)
            return None

        await self._store.update_call(call.id, {"claim_id": claim.id})
        logger.info("claim_resolved", call_id=call.id, claim_id=claim.id, method=method)
        return claim.id
