from eventdesk.domain.models import (
    GENERAL_ADMISSION,
    CheckInMethod,
    CheckInRecord,
    CustomField,
    Event,
    EventStatus,
    Person,
    Registration,
    RegistrationStatus,
    TicketTier,
    Visibility,
)

__all__ = [
    "GENERAL_ADMISSION",
    "CheckInMethod",
    "CheckInRecord",
    "CustomField",
    "Event",
    "EventStatus",
    "Person",
    "Registration",
    "RegistrationStatus",
    "TicketTier",
    "Visibility",
]
