"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from eventdesk.domain.models import CustomField, Event, EventStatus, RegistrationStatus, TicketTier, Visibility


class TicketTierIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    capacity: int = Field(..., gt=0, le=100000)
    price: Decimal = Field(default=Decimal("0"), ge=0)


class CustomFieldIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    required: bool = False
    label: Optional[str] = Field(None, max_length=255)


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    start_time: datetime
    end_time: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    capacity: int = Field(..., gt=0, le=100000)
    ticket_types: list[TicketTierIn] = Field(default_factory=list)
    custom_fields: list[CustomFieldIn] = Field(default_factory=list)
    visibility: Visibility = Visibility.PUBLIC
    invited_emails: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_end_time(self) -> "EventCreate":
        if self.end_time is None:
            self.end_time = self.start_time
        return self

    def to_domain(self, organizer_id: int) -> Event:
        return Event(
            id=None,
            title=self.title,
            start_time=self.start_time,
            end_time=self.end_time,
            capacity=self.capacity,
            tiers=[TicketTier(name=t.name, capacity=t.capacity, price=t.price) for t in self.ticket_types],
            custom_fields=[CustomField(name=f.name, required=f.required, label=f.label) for f in self.custom_fields],
            visibility=self.visibility,
            invited_emails=[email.strip().lower() for email in self.invited_emails],
            organizer_id=organizer_id,
            location=self.location,
        )


class TierAvailabilityResponse(BaseModel):
    name: str
    capacity: int
    price: Decimal
    taken: int
    remaining: int


class CustomFieldResponse(BaseModel):
    name: str
    required: bool
    label: Optional[str]


class EventResponse(BaseModel):
    id: int
    title: str
    start_time: datetime
    end_time: datetime
    location: Optional[str]
    capacity: int
    visibility: Visibility
    status: EventStatus
    organizer_id: Optional[int]
    ticket_types: list[TierAvailabilityResponse]
    custom_fields: list[CustomFieldResponse]


class AttendeeResponse(BaseModel):
    email: str
    name: str
    status: RegistrationStatus
    ticket_type: str
    waitlist_position: Optional[int] = None
