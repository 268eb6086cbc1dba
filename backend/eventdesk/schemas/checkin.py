"""
Pydantic schemas for check-in requests and responses.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from eventdesk.domain.errors import CheckInOutcome
from eventdesk.domain.models import RegistrationStatus


class CheckInRequest(BaseModel):
    code: Optional[str] = Field(None, max_length=512)
    event_id: Optional[int] = None

    @model_validator(mode="after")
    def code_or_event(self) -> "CheckInRequest":
        if not self.code and self.event_id is None:
            raise ValueError("Either code or event_id is required")
        return self


class SelfCheckInRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    code: Optional[str] = Field(None, max_length=512)
    event_id: Optional[int] = None


class CheckInResponse(BaseModel):
    message: str
    outcome: CheckInOutcome
    event_id: Optional[int] = None
    event_title: Optional[str] = None
    registration_id: Optional[int] = None
    attendee_email: Optional[str] = None
    attendee_name: Optional[str] = None
    status: Optional[RegistrationStatus] = None
