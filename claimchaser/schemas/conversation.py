"""
Normalized view of a remote conversation.

The voice provider reports the same facts under several field names
depending on API version and call state. ``parse_conversation`` maps
every known variant onto ``ConversationState`` once, at the boundary,
so the rest of the service only sees one shape.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

REPRESENTATIVE_ROLES = frozenset({"user"})
TERMINAL_ROLES = frozenset({"system"})

_STATUS_KEYS = ("status", "conversation_status")
_TURN_KEYS = ("transcript", "messages", "history")
_TURN_WRAPPER_KEYS = ("items", "data")
_TEXT_KEYS = ("message", "content")

_datetime_adapter = TypeAdapter(datetime)


class TranscriptTurn(BaseModel):
    role: str = ""
    message: str = ""

    @property
    def is_representative(self) -> bool:
        return self.role in REPRESENTATIVE_ROLES

    @property
    def is_terminal(self) -> bool:
        return self.role in TERMINAL_ROLES


class ConversationState(BaseModel):
    conversation_id: str = ""
    status: Optional[str] = None
    ended_at: Optional[datetime] = None
    turns: list[TranscriptTurn] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def has_activity(self) -> bool:
        return bool(self.turns)

    @property
    def last_turn(self) -> Optional[TranscriptTurn]:
        return self.turns[-1] if self.turns else None


class OutboundCallResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    conversation_id: Optional[str] = None
    call_sid: Optional[str] = None


def _first_present(payload: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value:
            return value
    return None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return _datetime_adapter.validate_python(value)
    except PydanticValidationError:
        return None


def _parse_turns(value: Any) -> list[TranscriptTurn]:
    if isinstance(value, dict):
        value = _first_present(value, _TURN_WRAPPER_KEYS) or []
    if not isinstance(value, list):
        return []

    turns: list[TranscriptTurn] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        text = _first_present(item, _TEXT_KEYS) or ""
        turns.append(TranscriptTurn(role=str(item.get("role") or ""), message=str(text)))
    return turns


def parse_conversation(payload: dict[str, Any], conversation_id: str = "") -> ConversationState:
    """Normalize a raw provider conversation payload."""
    status = _first_present(payload, _STATUS_KEYS)
    return ConversationState(
        conversation_id=str(payload.get("conversation_id") or conversation_id),
        status=str(status).lower() if status else None,
        ended_at=_parse_timestamp(payload.get("ended_at")),
        turns=_parse_turns(_first_present(payload, _TURN_KEYS)),
        raw=payload,
    )


def parse_outbound_call(payload: dict[str, Any]) -> OutboundCallResponse:
    return OutboundCallResponse(
        success=bool(payload.get("success", True)),
        message=payload.get("message"),
        conversation_id=payload.get("conversation_id") or payload.get("conversationId"),
        call_sid=payload.get("call_sid") or payload.get("callSid"),
    )
