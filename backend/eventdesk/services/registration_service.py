"""
Registration admission control.

CONCURRENCY STRATEGY: Ledger reservation under a per-event admission lock
=========================================================================

Problem:
  N people join an event with K seats left at the same moment. Exactly
  min(N, K) must get a seat, the rest must land on the waitlist with distinct,
  gap-free positions, and a cancellation must hand its seat to the head of the
  waitlist before a fresh joiner can grab it.

Solution:
  1. Cheap checks first (throttle, event open, tier, required answers). None of
     them touch the ledger.
  2. Take the event's admission lock. It serializes the seat-or-waitlist
     decision and waitlist position assignment for one event only; other
     events proceed in parallel. The in-process lock is paired with the
     store's guard() (a PostgreSQL advisory lock on the SQL store), so the
     section is exclusive across API workers too.
  3. Ask the ledger for a seat. The ledger's reserve is itself atomic per
     (event, tier), so it can never overshoot even without the outer lock.
  4. Seat -> REGISTERED with the seat token and a ticket.
     Full -> WAITLISTED at position (waitlisted count + 1).

  Cancellation takes the same lock, so "release seat, promote next" is one
  step from the point of view of every other join.

  The locked section runs shielded: a caller that disconnects mid-request
  cannot leave a reserved seat without its registration (or vice versa).

Outcomes, not exceptions:
  Every admission condition (already registered, event closed, throttled, ...)
  is returned as a JoinOutcome. Capacity exhaustion is the WAITLISTED outcome.
  Only integrity violations raise.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from eventdesk.core.locks import KeyedLocks
from eventdesk.core.logging import get_logger
from eventdesk.core.metrics import join_latency, record_cancel, record_integrity_violation, record_join
from eventdesk.domain.errors import (
    CancelOutcome,
    DuplicateRegistrationError,
    JoinOutcome,
    LedgerIntegrityError,
    WaitlistIntegrityError,
)
from eventdesk.domain.models import Event, Registration, RegistrationStatus, utcnow
from eventdesk.domain.outcomes import CancelResult, JoinResult
from eventdesk.services.interfaces.ledger import CapacityLedger, SeatToken
from eventdesk.services.notification_service import NotificationPublisher, RegistrationSignal, SignalKind
from eventdesk.services.throttle import JoinThrottle
from eventdesk.services.ticket_service import TicketIssuer
from eventdesk.services.waitlist_service import WaitlistPromoter
from eventdesk.stores.interfaces import RegistrationStore

logger = get_logger(__name__)


class AdmissionController:
    def __init__(
        self,
        store: RegistrationStore,
        ledger: CapacityLedger,
        promoter: WaitlistPromoter,
        issuer: TicketIssuer,
        publisher: NotificationPublisher,
        registration_locks: KeyedLocks,
        throttle: Optional[JoinThrottle] = None,
        clock: Callable = utcnow,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._promoter = promoter
        self._issuer = issuer
        self._publisher = publisher
        self._registration_locks = registration_locks
        self._event_locks = KeyedLocks()
        self._throttle = throttle
        self._clock = clock

    async def join(
        self,
        event_id: int,
        person_id: int,
        tier: Optional[str] = None,
        answers: Optional[dict[str, str]] = None,
    ) -> JoinResult:
        """
        Join an event: a confirmed seat if one is free, else the waitlist.
        Callers must branch on the outcome; REGISTERED is not guaranteed.
        """
        start = time.perf_counter()
        try:
            result = await self._join(event_id, person_id, tier, answers or {})
        finally:
            join_latency.observe(time.perf_counter() - start)

        record_join(result.outcome.value.lower())
        if result.outcome.admitted:
            kind = SignalKind.REGISTERED if result.outcome == JoinOutcome.REGISTERED else SignalKind.WAITLISTED
            self._publisher.publish(RegistrationSignal.for_registration(kind, result.registration))
        else:
            logger.info(
                "join_rejected",
                event_id=event_id,
                person_id=person_id,
                outcome=result.outcome.value,
            )
        return result

    async def _join(self, event_id: int, person_id: int, tier: Optional[str], answers: dict[str, str]) -> JoinResult:
        if self._throttle is not None and not await self._throttle.allow(person_id):
            return JoinResult(JoinOutcome.RATE_LIMITED, "Too many requests. Please wait a moment and try again.")

        event = await self._store.get_event(event_id)
        if event is None:
            return JoinResult(JoinOutcome.EVENT_NOT_FOUND, f"Event {event_id} not found")

        if not event.is_open(self._clock()):
            return JoinResult(JoinOutcome.EVENT_NOT_OPEN, "This event is not open for registration")

        if not event.is_invited((await self._person_email(person_id)) or ""):
            return JoinResult(JoinOutcome.NOT_INVITED, "This event is private and you are not invited")

        tier_def = event.get_tier(tier)
        if tier_def is None:
            return JoinResult(JoinOutcome.UNKNOWN_TIER, f"Unknown ticket type: {tier}")

        missing = event.missing_required_fields(answers)
        if missing:
            return JoinResult(
                JoinOutcome.MISSING_REQUIRED_FIELD,
                f"Missing required field(s): {', '.join(missing)}",
            )

        return await asyncio.shield(self._admit(event, person_id, tier_def.name, answers))

    async def _person_email(self, person_id: int) -> Optional[str]:
        person = await self._store.get_person(person_id)
        return person.email if person else None

    @asynccontextmanager
    async def _event_section(self, event_id: int) -> AsyncIterator[None]:
        async with self._event_locks.hold(event_id), self._store.guard("event", event_id):
            yield

    @asynccontextmanager
    async def _registration_section(self, registration_id: int) -> AsyncIterator[None]:
        async with self._registration_locks.hold(registration_id), self._store.guard("registration", registration_id):
            yield

    async def _admit(self, event: Event, person_id: int, tier: str, answers: dict[str, str]) -> JoinResult:
        async with self._event_section(event.id):
            existing = await self._store.find_registration(event.id, person_id)
            if existing is not None and existing.is_active:
                return JoinResult(JoinOutcome.ALREADY_REGISTERED, "You are already registered for this event")

            token = await self._ledger.reserve(event.id, tier)
            if token is not None:
                return await self._confirm(event, person_id, tier, answers, token)
            return await self._waitlist(event, person_id, tier, answers)

    async def _confirm(
        self,
        event: Event,
        person_id: int,
        tier: str,
        answers: dict[str, str],
        token: SeatToken,
    ) -> JoinResult:
        registration = Registration(
            id=None,
            event_id=event.id,
            person_id=person_id,
            tier=tier,
            status=RegistrationStatus.REGISTERED,
            created_at=self._clock(),
            answers=dict(answers),
            seat_token=token.token,
        )
        try:
            saved = await self._store.add_registration(registration)
        except DuplicateRegistrationError:
            await self._ledger.release(token)
            return JoinResult(JoinOutcome.ALREADY_REGISTERED, "You are already registered for this event")
        except Exception:
            await self._ledger.release(token)
            raise

        saved.ticket_code = self._issuer.issue(saved)
        saved = await self._store.save_registration(saved)

        logger.info(
            "registration_confirmed",
            event_id=event.id,
            person_id=person_id,
            registration_id=saved.id,
            tier=tier,
        )
        return JoinResult(JoinOutcome.REGISTERED, "You have successfully registered!", saved)

    async def _waitlist(self, event: Event, person_id: int, tier: str, answers: dict[str, str]) -> JoinResult:
        waitlist = await self._store.list_waitlist(event.id)
        positions = [r.waitlist_position for r in waitlist]
        if sorted(positions) != list(range(1, len(positions) + 1)):
            record_integrity_violation("waitlist_positions")
            logger.critical(
                "waitlist_positions_not_contiguous",
                event_id=event.id,
                positions=positions,
            )
            raise WaitlistIntegrityError("Waitlist positions are not contiguous", event_id=event.id, positions=positions)

        position = len(waitlist) + 1
        registration = Registration(
            id=None,
            event_id=event.id,
            person_id=person_id,
            tier=tier,
            status=RegistrationStatus.WAITLISTED,
            created_at=self._clock(),
            waitlist_position=position,
            answers=dict(answers),
        )
        try:
            saved = await self._store.add_registration(registration)
        except DuplicateRegistrationError:
            return JoinResult(JoinOutcome.ALREADY_REGISTERED, "You are already registered for this event")

        logger.info(
            "registration_waitlisted",
            event_id=event.id,
            person_id=person_id,
            registration_id=saved.id,
            tier=tier,
            position=position,
        )
        return JoinResult(
            JoinOutcome.WAITLISTED,
            f"Event is full. You have been added to the waitlist (position {position}).",
            saved,
        )

    async def cancel(self, registration_id: int) -> CancelResult:
        """
        Cancel a registration. Idempotent: cancelling something already
        cancelled or attended reports NOT_FOUND and changes nothing.
        """
        registration = await self._store.get_registration(registration_id)
        if registration is None:
            record_cancel("not_found")
            return CancelResult(CancelOutcome.NOT_FOUND, "Registration not found")

        result = await asyncio.shield(self._cancel(registration.event_id, registration_id))
        record_cancel(result.outcome.value.lower())
        if result.outcome == CancelOutcome.CANCELLED:
            self._publisher.publish(RegistrationSignal.for_registration(SignalKind.CANCELLED, result.registration))
        return result

    async def cancel_for_person(self, event_id: int, person_id: int) -> CancelResult:
        registration = await self._store.find_registration(event_id, person_id)
        if registration is None or not registration.is_active:
            record_cancel("not_found")
            return CancelResult(CancelOutcome.NOT_FOUND, "No active registration found for this event")
        return await self.cancel(registration.id)

    async def _cancel(self, event_id: int, registration_id: int) -> CancelResult:
        async with self._event_section(event_id), self._registration_section(registration_id):
            current = await self._store.get_registration(registration_id)
            if current.status == RegistrationStatus.CANCELLED:
                return CancelResult(CancelOutcome.NOT_FOUND, "Registration is already cancelled", current)
            if current.status == RegistrationStatus.ATTENDED:
                return CancelResult(CancelOutcome.NOT_FOUND, "Registration has already been checked in", current)

            if current.status == RegistrationStatus.REGISTERED:
                return await self._cancel_confirmed(current)
            return await self._cancel_waitlisted(current)

    async def _cancel_confirmed(self, registration: Registration) -> CancelResult:
        if not registration.seat_token:
            record_integrity_violation("registered_without_seat")
            logger.critical(
                "registered_without_seat_token",
                event_id=registration.event_id,
                registration_id=registration.id,
            )
            raise LedgerIntegrityError(
                "Confirmed registration holds no seat token",
                event_id=registration.event_id,
                registration_id=registration.id,
            )

        registration.status = RegistrationStatus.CANCELLED
        saved = await self._store.save_registration(registration)
        released = await self._ledger.release(
            SeatToken(token=registration.seat_token, event_id=registration.event_id, tier=registration.tier)
        )
        logger.info(
            "registration_cancelled",
            event_id=registration.event_id,
            registration_id=registration.id,
            person_id=registration.person_id,
            seat_released=released,
        )

        promoted = await self._promoter.promote(
            registration.event_id,
            registration.tier,
            seats_freed=1 if released else 0,
        )
        return CancelResult(CancelOutcome.CANCELLED, "Registration cancelled", saved, promoted)

    async def _cancel_waitlisted(self, registration: Registration) -> CancelResult:
        position = registration.waitlist_position
        registration.status = RegistrationStatus.CANCELLED
        registration.waitlist_position = None
        saved = await self._store.save_registration(registration)
        shifted = await self._store.shift_waitlist(registration.event_id, position)
        logger.info(
            "waitlist_entry_cancelled",
            event_id=registration.event_id,
            registration_id=registration.id,
            person_id=registration.person_id,
            position=position,
            positions_shifted=shifted,
        )
        return CancelResult(CancelOutcome.CANCELLED, "Removed from the waitlist", saved)

    async def registrations_for_person(self, person_id: int) -> list[tuple[Registration, Event]]:
        """Registrations of a person with their events, ordered by event start."""
        rows = []
        for registration in await self._store.list_person_registrations(person_id):
            event = await self._store.get_event(registration.event_id)
            if event is not None:
                rows.append((registration, event))
        rows.sort(key=lambda row: row[1].start_time)
        return rows
