from eventdesk.models.user import User
from eventdesk.models.event import Event
from eventdesk.models.registration import Registration, CheckInRecord

__all__ = ["User", "Event", "Registration", "CheckInRecord"]
