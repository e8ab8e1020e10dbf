"""
Data models for outbound calls and reconciliation sweeps.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CallStatus(str, Enum):
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


ACTIVE_STATUSES = (CallStatus.INITIATED, CallStatus.IN_PROGRESS)


class ExtractedData(BaseModel):
    """Structured denial information pulled out of a transcript."""
    denial_reasons: list[str] = Field(default_factory=list)
    next_steps: Optional[str] = None

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CallRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    claim_id: Optional[str] = None
    conversation_id: Optional[str] = None
    call_sid: Optional[str] = None
    to_number: Optional[str] = None
    status: CallStatus = CallStatus.INITIATED
    started_at: datetime
    ended_at: Optional[datetime] = None
    transcript: Optional[Any] = None
    extracted_data: Optional[dict[str, Any]] = None

    @field_validator("started_at", "ended_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Timestamps stored without an offset are UTC."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES and self.ended_at is None

    @property
    def is_completed(self) -> bool:
        return self.status == CallStatus.COMPLETED and self.ended_at is not None

    @property
    def has_extracted_data(self) -> bool:
        return bool(self.extracted_data)

    def age(self, now: datetime) -> timedelta:
        return now - self.started_at


class SweepSummary(BaseModel):
    """Result of one reconciliation sweep. Always returned with HTTP 200."""
    success: bool = True
    message: str = ""
    checked: int = 0
    processed: int = 0
    completed: int = 0
    errors: int = 0
    error_details: list[str] = Field(default_factory=list)
    dispatched: bool = False


class EndCallRequest(BaseModel):
    call_id: Optional[str] = Field(default=None, alias="callId")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")

    model_config = ConfigDict(populate_by_name=True)


class ProcessTranscriptRequest(BaseModel):
    conversation_id: Optional[str] = None
    call_id: Optional[str] = None


class ClaimSummary(BaseModel):
    id: str
    patient_name: Optional[str] = None
    claim_number: Optional[str] = None
    insurance_provider: Optional[str] = None
    claim_status: Optional[str] = None


class ActiveCallView(BaseModel):
    call: CallRecord
    claim: Optional[ClaimSummary] = None
    duration: str = "0:00"


class RecentCallView(BaseModel):
    call: CallRecord
    claim: Optional[ClaimSummary] = None
    duration: str = "0:00"


class CallStats(BaseModel):
    active_calls: int = 0
    today: int = 0
    avg_duration: str = "0:00"
    success_rate: int = 0


class EndCallResult(BaseModel):
    success: bool = True
    call_id: str
    conversation_id: Optional[str] = None
    terminated: bool = False
    strategy: Optional[str] = None
    already_completed: bool = False
    dispatched: bool = False


class WebhookEvent(BaseModel):
    """Provider webhook body. Field names vary between event versions."""
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    status: Optional[str] = None
    event_type: Optional[str] = Field(default=None, alias="eventType")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def is_completion(self) -> bool:
        return (self.status or "").lower() in ("completed", "ended") or (
            self.event_type == "conversation.completed"
        )
