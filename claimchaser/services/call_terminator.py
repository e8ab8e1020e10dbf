"""
Call Terminator.

Best-effort remote hangup. The provider has no single reliable "end this
call" operation, so several endpoints are tried in order until one
succeeds. Failures never propagate: the caller completes the call locally
either way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

import httpx

from claimchaser.exceptions import ClaimChaserError
from claimchaser.logging_config import get_logger
from claimchaser.services.voice_client import ElevenLabsClient

logger = get_logger(__name__)


@dataclass
class TerminationAttempt:
    strategy: str
    success: bool
    error: Optional[str] = None


@dataclass
class TerminationResult:
    conversation_id: str
    terminated: bool = False
    strategy: Optional[str] = None
    attempts: list[TerminationAttempt] = field(default_factory=list)


class CallTerminator:
    def __init__(self, voice: ElevenLabsClient):
        self._voice = voice

    def _strategies(
        self, conversation_id: str, call_sid: Optional[str]
    ) -> list[tuple[str, Callable[[], Awaitable[None]]]]:
        strategies: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            ("end", lambda: self._voice.end_conversation(conversation_id)),
            ("delete", lambda: self._voice.delete_conversation(conversation_id)),
            ("patch_status", lambda: self._voice.patch_conversation_status(conversation_id)),
            ("hangup", lambda: self._voice.hangup_conversation(conversation_id)),
        ]
        if call_sid:
            strategies.append(("carrier_end", lambda: self._voice.end_carrier_call(call_sid)))
        return strategies

    async def terminate(
        self, conversation_id: str, call_sid: Optional[str] = None
    ) -> TerminationResult:
        result = TerminationResult(conversation_id=conversation_id)

        for name, strategy in self._strategies(conversation_id, call_sid):
            try:
                await strategy()
            except (ClaimChaserError, httpx.HTTPError) as e:
                result.attempts.append(TerminationAttempt(name, False, str(e)))
                logger.debug(
                    "termination_strategy_failed",
                    conversation_id=conversation_id,
                    strategy=name,
                    error=str(e),
                )
                continue

            result.attempts.append(TerminationAttempt(name, True))
            result.terminated = True
            result.strategy = name
            logger.info("call_terminated", conversation_id=conversation_id, strategy=name)
            return result

        logger.warning(
            "call_termination_failed",
            conversation_id=conversation_id,
            attempted=[a.strategy for a in result.attempts],
        )
        return result
