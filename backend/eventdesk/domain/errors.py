"""Error taxonomy for the admission and check-in core.

Admission and verification problems are *outcomes*, returned to the caller as
enum members inside a result object. Only resource errors (scan session) and
integrity violations are raised.
"""

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Domain error codes."""

    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    INVALID_EVENT = "INVALID_EVENT"
    DUPLICATE_REGISTRATION = "DUPLICATE_REGISTRATION"
    CAPTURE_PERMISSION_DENIED = "CAPTURE_PERMISSION_DENIED"
    CAPTURE_DEVICE_ABSENT = "CAPTURE_DEVICE_ABSENT"
    CAPTURE_TIMEOUT = "CAPTURE_TIMEOUT"
    LEDGER_INTEGRITY = "LEDGER_INTEGRITY"
    CHECKIN_INTEGRITY = "CHECKIN_INTEGRITY"
    WAITLIST_INTEGRITY = "WAITLIST_INTEGRITY"


class JoinOutcome(str, Enum):
    REGISTERED = "REGISTERED"
    WAITLISTED = "WAITLISTED"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_NOT_OPEN = "EVENT_NOT_OPEN"
    NOT_INVITED = "NOT_INVITED"
    UNKNOWN_TIER = "UNKNOWN_TIER"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    RATE_LIMITED = "RATE_LIMITED"

    @property
    def admitted(self) -> bool:
        """Both a seat and a waitlist spot count as a successful join."""
        return self in (JoinOutcome.REGISTERED, JoinOutcome.WAITLISTED)


class CancelOutcome(str, Enum):
    CANCELLED = "CANCELLED"
    NOT_FOUND = "NOT_FOUND"  # missing, or already cancelled / attended


class CheckInOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    INVALID_FORMAT = "INVALID_FORMAT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class EventNotFoundError(DomainError):
    def __init__(self, event_id: int) -> None:
        super().__init__(ErrorCode.EVENT_NOT_FOUND, "Event not found")
        self.event_id = event_id


class InvalidEventError(DomainError):
    """Raised when an event definition breaks a capacity or tier rule."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INVALID_EVENT, message)


class DuplicateRegistrationError(DomainError):
    """Raised by a store when a second non-cancelled registration is inserted."""

    def __init__(self, event_id: int, person_id: int) -> None:
        super().__init__(ErrorCode.DUPLICATE_REGISTRATION, "You are already registered for this event")
        self.event_id = event_id
        self.person_id = person_id


# Resource errors: terminate a scan session, never touch the ledger.

class CaptureError(DomainError):
    pass


class CapturePermissionDenied(CaptureError):
    def __init__(self, message: str = "Camera permission denied") -> None:
        super().__init__(ErrorCode.CAPTURE_PERMISSION_DENIED, message)


class CaptureDeviceAbsent(CaptureError):
    def __init__(self, message: str = "No capture device found") -> None:
        super().__init__(ErrorCode.CAPTURE_DEVICE_ABSENT, message)


class CaptureTimeout(CaptureError):
    def __init__(self, message: str = "Capture device did not become ready in time") -> None:
        super().__init__(ErrorCode.CAPTURE_TIMEOUT, message)


# Integrity violations: should never happen. They halt the offending mutation.

class IntegrityViolation(DomainError):
    def __init__(self, code: ErrorCode, message: str, **context: Any) -> None:
        super().__init__(code, message)
        self.context = context


class LedgerIntegrityError(IntegrityViolation):
    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(ErrorCode.LEDGER_INTEGRITY, message, **context)


class CheckInIntegrityError(IntegrityViolation):
    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(ErrorCode.CHECKIN_INTEGRITY, message, **context)


class WaitlistIntegrityError(IntegrityViolation):
    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(ErrorCode.WAITLIST_INTEGRITY, message, **context)
