"""
Domain models for cancellation feedback.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from packages.billing.models.domain.enums import CancellationReason

MAX_FEEDBACK_NOTE_LENGTH = 1000


class CancellationFeedback(BaseModel):
    id: int
    subscription_id: int
    organization_id: int
    reason_code: CancellationReason
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CancellationFeedbackCreateModel(BaseModel):
    subscription_id: int
    organization_id: int
    reason_code: str
    note: Optional[str] = Field(default=None, max_length=MAX_FEEDBACK_NOTE_LENGTH)

    @field_validator("reason_code", mode="before")
    @classmethod
    def validate_reason(cls, v):
        if isinstance(v, CancellationReason):
            return v.value
        return v
