"""Domain models shared by the ledger, admission controller and verifier.

Plain dataclasses: stores map their rows onto these, services never see ORM objects.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

GENERAL_ADMISSION = "General Admission"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventStatus(str, Enum):
    UPCOMING = "UPCOMING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Visibility(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class RegistrationStatus(str, Enum):
    REGISTERED = "REGISTERED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"
    ATTENDED = "ATTENDED"

    @property
    def holds_seat(self) -> bool:
        return self in (RegistrationStatus.REGISTERED, RegistrationStatus.ATTENDED)


class CheckInMethod(str, Enum):
    SCANNED = "SCANNED"
    SELF_SERVICE = "SELF_SERVICE"


@dataclass(frozen=True)
class TicketTier:
    name: str
    capacity: int
    price: Decimal = Decimal("0")


@dataclass(frozen=True)
class CustomField:
    name: str
    required: bool = False
    label: Optional[str] = None


@dataclass
class Person:
    id: Optional[int]
    email: str
    display_name: str = ""
    role: str = "member"


@dataclass
class Event:
    id: Optional[int]
    title: str
    start_time: datetime
    end_time: datetime
    capacity: int
    tiers: list[TicketTier] = field(default_factory=list)
    custom_fields: list[CustomField] = field(default_factory=list)
    visibility: Visibility = Visibility.PUBLIC
    status: EventStatus = EventStatus.UPCOMING
    invited_emails: list[str] = field(default_factory=list)
    organizer_id: Optional[int] = None
    location: Optional[str] = None

    def effective_tiers(self) -> list[TicketTier]:
        """Declared tiers, or the implicit General Admission tier sized to the event."""
        if self.tiers:
            return list(self.tiers)
        return [TicketTier(name=GENERAL_ADMISSION, capacity=self.capacity)]

    def get_tier(self, name: Optional[str]) -> Optional[TicketTier]:
        if name is None:
            return self.effective_tiers()[0]
        for tier in self.effective_tiers():
            if tier.name == name:
                return tier
        return None

    def effective_status(self, now: Optional[datetime] = None) -> EventStatus:
        if self.status in (EventStatus.CANCELLED, EventStatus.COMPLETED):
            return self.status
        now = now or utcnow()
        if now >= self.end_time:
            return EventStatus.COMPLETED
        if now >= self.start_time:
            return EventStatus.IN_PROGRESS
        return EventStatus.UPCOMING

    def is_open(self, now: Optional[datetime] = None) -> bool:
        return self.effective_status(now) not in (EventStatus.CANCELLED, EventStatus.COMPLETED)

    def is_invited(self, email: str) -> bool:
        if self.visibility == Visibility.PUBLIC:
            return True
        return email.lower() in {e.lower() for e in self.invited_emails}

    def missing_required_fields(self, answers: dict[str, str]) -> list[str]:
        missing = []
        for custom_field in self.custom_fields:
            if not custom_field.required:
                continue
            value = answers.get(custom_field.name)
            if value is None or not str(value).strip():
                missing.append(custom_field.name)
        return missing


@dataclass
class Registration:
    id: Optional[int]
    event_id: int
    person_id: int
    tier: str
    status: RegistrationStatus
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    waitlist_position: Optional[int] = None
    answers: dict[str, str] = field(default_factory=dict)
    seat_token: Optional[str] = None
    ticket_code: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status != RegistrationStatus.CANCELLED


@dataclass(frozen=True)
class CheckInRecord:
    registration_id: int
    checked_in_at: datetime
    method: CheckInMethod
    idempotency_key: str
