"""
Call completion heuristics.

No single provider signal reliably says a call is over, so completion is
an ordered set of named checks. The first check that fires supplies the
reason tag that gets logged with the completion.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from claimchaser.schemas.call import CallRecord, CallStatus
from claimchaser.schemas.conversation import ConversationState

REMOTE_TERMINAL_STATUSES = frozenset({"completed", "ended", "done", "finished"})


@dataclass(frozen=True)
class CompletionCheck:
    name: str
    predicate: Callable[[CallRecord, ConversationState], bool]


def _local_completed(call: CallRecord, conversation: ConversationState) -> bool:
    return call.status == CallStatus.COMPLETED


def _remote_status(call: CallRecord, conversation: ConversationState) -> bool:
    return conversation.status in REMOTE_TERMINAL_STATUSES


def _remote_ended_at(call: CallRecord, conversation: ConversationState) -> bool:
    return conversation.ended_at is not None


def _terminal_turn(call: CallRecord, conversation: ConversationState) -> bool:
    last = conversation.last_turn
    return last is not None and last.is_terminal


COMPLETION_CHECKS: tuple[CompletionCheck, ...] = (
    CompletionCheck("local_completed", _local_completed),
    CompletionCheck("remote_status", _remote_status),
    CompletionCheck("remote_ended_at", _remote_ended_at),
    CompletionCheck("terminal_turn", _terminal_turn),
)


def evaluate_completion(
    call: CallRecord,
    conversation: ConversationState,
    checks: tuple[CompletionCheck, ...] = COMPLETION_CHECKS,
) -> Optional[str]:
    """Return the name of the first check that fires, or None if the call is still live."""
    for check in checks:
        if check.predicate(call, conversation):
            return check.name
    return None
