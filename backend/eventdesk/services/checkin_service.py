"""
Check-in verification.

EXACTLY-ONCE ATTENDANCE
=======================

A scanner and a kiosk can present the same ticket at the same moment. Two
guards make sure only one of them records attendance:

  1. A per-registration lock (shared with cancellation, and mirrored by the
     store's guard() so it holds across API workers) serializes the
     "is there a record? / is it eligible?" checks with the write.
  2. The store's check_in is itself atomic: the record insert and the
     REGISTERED -> ATTENDED update run in one transaction, and a unique
     registration_id means a second insert loses and reports False.

The loser observes ALREADY_CHECKED_IN, never a second SUCCESS.

Resolution order:
  unparsable / forged          -> INVALID_FORMAT   (no store access when unparsable)
  unknown registration / event -> NOT_FOUND
  existing check-in record     -> ALREADY_CHECKED_IN
  CANCELLED / WAITLISTED       -> NOT_ELIGIBLE
  otherwise                    -> SUCCESS
"""

from datetime import datetime
from typing import Callable, Optional

from eventdesk.core.locks import KeyedLocks
from eventdesk.core.logging import get_logger
from eventdesk.core.metrics import record_checkin
from eventdesk.domain.errors import CheckInOutcome
from eventdesk.domain.models import (
    CheckInMethod,
    CheckInRecord,
    Event,
    Person,
    Registration,
    RegistrationStatus,
    utcnow,
)
from eventdesk.domain.outcomes import VerifyResult
from eventdesk.services.notification_service import NotificationPublisher, RegistrationSignal, SignalKind
from eventdesk.services.ticket_service import ParsedTicket, TicketIssuer, parse_ticket, short_code
from eventdesk.stores.interfaces import RegistrationStore

logger = get_logger(__name__)


class CheckInVerifier:
    def __init__(
        self,
        store: RegistrationStore,
        issuer: TicketIssuer,
        publisher: NotificationPublisher,
        registration_locks: KeyedLocks,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._publisher = publisher
        self._registration_locks = registration_locks
        self._clock = clock

    async def verify(
        self,
        presented: str,
        claimed_event_id: Optional[int] = None,
        person_id: Optional[int] = None,
        method: CheckInMethod = CheckInMethod.SCANNED,
        enforce_owner: bool = False,
    ) -> VerifyResult:
        """
        Verify a presented ticket identifier and record attendance exactly once.

        Args:
            presented: Raw decoded or typed payload.
            claimed_event_id: Event the scanner is working; a ticket for any
                other event is NOT_FOUND.
            person_id: Required for the short and URL forms, which name only
                the event.
            method: Recorded on the check-in record.
            enforce_owner: Structured tickets must belong to person_id
                (self-service).
        """
        parsed = parse_ticket(presented)
        if parsed is None:
            return self._finish(CheckInOutcome.INVALID_FORMAT, "Invalid QR code format", method)

        if parsed.is_structured and not self._issuer.is_authentic(parsed):
            logger.warning("ticket_signature_mismatch", event_id=parsed.event_id, registration_id=parsed.registration_id)
            return self._finish(CheckInOutcome.INVALID_FORMAT, "Invalid QR code format", method)

        if claimed_event_id is not None and parsed.event_id != claimed_event_id:
            return self._finish(CheckInOutcome.NOT_FOUND, "This ticket is for a different event", method)

        registration = await self._resolve(parsed, person_id)
        if registration is None:
            return self._finish(CheckInOutcome.NOT_FOUND, "No registration found for this ticket", method)
        if enforce_owner and person_id is not None and registration.person_id != person_id:
            return self._finish(CheckInOutcome.NOT_FOUND, "No registration found for this ticket", method)

        event = await self._store.get_event(registration.event_id)
        person = await self._store.get_person(registration.person_id)
        if event is None:
            return self._finish(CheckInOutcome.NOT_FOUND, "Event not found", method)

        idempotency_key = self._issuer.idempotency_key(parsed, registration.person_id)
        return await self._record(registration, event, person, method, idempotency_key)

    async def _resolve(self, parsed: ParsedTicket, person_id: Optional[int]) -> Optional[Registration]:
        if parsed.is_structured:
            registration = await self._store.get_registration(parsed.registration_id)
            if registration is None or registration.event_id != parsed.event_id:
                return None
            return registration
        if person_id is None:
            return None
        return await self._store.find_registration(parsed.event_id, person_id)

    async def _record(
        self,
        registration: Registration,
        event: Event,
        person: Optional[Person],
        method: CheckInMethod,
        idempotency_key: str,
    ) -> VerifyResult:
        async with self._registration_locks.hold(registration.id), self._store.guard("registration", registration.id):
            current = await self._store.get_registration(registration.id)

            if await self._store.get_check_in(current.id) is not None:
                return self._finish(
                    CheckInOutcome.ALREADY_CHECKED_IN,
                    "Already checked in",
                    method,
                    current,
                    event,
                    person,
                )

            if current.status == RegistrationStatus.CANCELLED:
                return self._finish(
                    CheckInOutcome.NOT_ELIGIBLE,
                    "This registration was cancelled",
                    method,
                    current,
                    event,
                    person,
                )
            if current.status == RegistrationStatus.WAITLISTED:
                return self._finish(
                    CheckInOutcome.NOT_ELIGIBLE,
                    "You are on the waitlist and do not have a confirmed seat",
                    method,
                    current,
                    event,
                    person,
                )

            record = CheckInRecord(
                registration_id=current.id,
                checked_in_at=self._clock(),
                method=method,
                idempotency_key=idempotency_key,
            )
            if not await self._store.check_in(record):
                return self._finish(
                    CheckInOutcome.ALREADY_CHECKED_IN,
                    "Already checked in",
                    method,
                    current,
                    event,
                    person,
                )

            attended = await self._store.get_registration(current.id)

        logger.info(
            "checkin_verified",
            event_id=event.id,
            registration_id=attended.id,
            person_id=attended.person_id,
            method=method.value,
        )
        self._publisher.publish(RegistrationSignal.for_registration(SignalKind.ATTENDED, attended))
        return self._finish(
            CheckInOutcome.SUCCESS,
            f"Checked in to {event.title}",
            method,
            attended,
            event,
            person,
        )

    def _finish(
        self,
        outcome: CheckInOutcome,
        message: str,
        method: CheckInMethod,
        registration: Optional[Registration] = None,
        event: Optional[Event] = None,
        person: Optional[Person] = None,
    ) -> VerifyResult:
        record_checkin(outcome.value.lower(), method.value.lower())
        if outcome != CheckInOutcome.SUCCESS:
            logger.info(
                "checkin_rejected",
                outcome=outcome.value,
                method=method.value,
                registration_id=registration.id if registration else None,
            )
        return VerifyResult(outcome, message, registration, event, person)

    async def self_check_in(
        self,
        email: str,
        presented: Optional[str] = None,
        event_id: Optional[int] = None,
    ) -> VerifyResult:
        """
        Kiosk check-in identified by email. Uses the presented code when given,
        else the event id, else the person's registration for an event that
        starts today.
        """
        method = CheckInMethod.SELF_SERVICE
        person = await self._store.get_person_by_email(email)
        if person is None:
            return self._finish(CheckInOutcome.NOT_FOUND, "No account found for this email", method)

        if presented:
            return await self.verify(presented, person_id=person.id, method=method, enforce_owner=True)
        if event_id is not None:
            return await self.verify(short_code(event_id), person_id=person.id, method=method)

        registration = await self._registration_today(person.id)
        if registration is None:
            return self._finish(CheckInOutcome.NOT_FOUND, "No registration found for an event today", method)
        return await self.verify(short_code(registration.event_id), person_id=person.id, method=method)

    async def _registration_today(self, person_id: int) -> Optional[Registration]:
        today = self._clock().date()
        candidates = []
        for registration in await self._store.list_person_registrations(person_id):
            if not registration.is_active:
                continue
            event = await self._store.get_event(registration.event_id)
            if event is not None and event.start_time.date() == today:
                candidates.append((event.start_time, registration))
        if not candidates:
            return None
        candidates.sort(key=lambda pair: pair[0])
        return candidates[0][1]
