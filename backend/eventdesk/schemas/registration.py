"""
Pydantic schemas for registration request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from eventdesk.domain.models import RegistrationStatus


class RegistrationCreate(BaseModel):
    ticket_type: Optional[str] = Field(None, max_length=100)
    custom_answers: dict[str, str] = Field(default_factory=dict)


class RegistrationResponse(BaseModel):
    message: str
    status: RegistrationStatus
    registration_id: int
    event_id: int
    ticket_type: str
    waitlist_position: Optional[int] = None


class CancelResponse(BaseModel):
    message: str
    registration_id: int
    status: RegistrationStatus


class MyRegistrationResponse(BaseModel):
    event_id: int
    title: str
    start_time: datetime
    my_status: RegistrationStatus
    ticket_type: str
    waitlist_position: Optional[int] = None


class TicketResponse(BaseModel):
    event_id: int
    registration_id: int
    ticket_code: str
    short_code: str
    qr_code: str  # base64 PNG
