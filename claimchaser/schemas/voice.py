"""
Data models for the global voice toggle.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, StrictBool


class VoiceSettingsRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    enabled: bool = False
    created_at: Optional[datetime] = None


class VoiceSettingsUpdate(BaseModel):
    enabled: StrictBool


class VoiceSettingsResponse(BaseModel):
    success: bool = True
    enabled: bool
