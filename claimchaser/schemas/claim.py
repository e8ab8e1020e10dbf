"""
Data models for claims and their denial reasons.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ClaimStatus(str, Enum):
    DENIED = "Denied"
    PENDING_RESUBMISSION = "Pending Resubmission"
    AWAITING_ACCEPTANCE = "Awaiting Acceptance"
    COMPLETE = "Complete"


class DenialReasonStatus(str, Enum):
    PENDING = "Pending"
    RESUBMITTED = "Resubmitted"
    ACCEPTED = "Accepted"


class ClaimRecord(BaseModel):
    """A denial/resubmission unit of work.

    ``claim_status`` is kept as a plain string so statuses added by the
    dashboard round-trip untouched.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    date_of_birth: Optional[str] = None
    claim_number: Optional[str] = None
    date_of_service: Optional[str] = None
    billed_amount: Optional[float] = None
    length_of_service: Optional[str] = None
    insurance_provider: Optional[str] = None
    provider_id: Optional[str] = None
    office_id: Optional[str] = None
    doctor_id: Optional[str] = None
    claim_status: Optional[str] = None
    called_at: Optional[datetime] = None
    next_steps: Optional[str] = None
    created_at: Optional[datetime] = None


class DenialReasonRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    claim_id: str
    denial_reason: str
    resubmission_instructions: Optional[str] = None
    date_recorded: Optional[date] = None
    status: DenialReasonStatus = DenialReasonStatus.PENDING
    date_reason_resubmitted: Optional[date] = None
    date_accepted: Optional[date] = None


class DenialReasonUpdate(BaseModel):
    """PATCH body for a denial reason. Only fields that were sent are applied."""
    denial_reason: Optional[str] = None
    resubmission_instructions: Optional[str] = None
    date_reason_resubmitted: Optional[date] = None
    date_accepted: Optional[date] = None
    status: Optional[str] = None

    def sent_fields(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "status"
        }


def derive_denial_status(
    date_reason_resubmitted: Optional[date],
    date_accepted: Optional[date],
) -> Optional[DenialReasonStatus]:
    """Status forced by the lifecycle dates; Accepted wins when both are set."""
    if date_accepted:
        return DenialReasonStatus.ACCEPTED
    if date_reason_resubmitted:
        return DenialReasonStatus.RESUBMITTED
    return None


class DenialReasonsAdd(BaseModel):
    """Body for recording denial reasons taken down outside of a call."""
    denial_reason: Optional[str] = None
    next_steps: Optional[str] = None
