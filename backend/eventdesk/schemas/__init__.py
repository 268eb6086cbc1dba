from eventdesk.schemas.event import EventCreate, EventResponse, AttendeeResponse
from eventdesk.schemas.registration import RegistrationCreate, RegistrationResponse, CancelResponse
from eventdesk.schemas.checkin import CheckInRequest, SelfCheckInRequest, CheckInResponse

__all__ = [
    "EventCreate", "EventResponse", "AttendeeResponse",
    "RegistrationCreate", "RegistrationResponse", "CancelResponse",
    "CheckInRequest", "SelfCheckInRequest", "CheckInResponse",
]
