"""In-process store.

Every method runs without awaiting in the middle, so each call is atomic with
respect to other coroutines on the loop. Objects are copied in and out so
callers cannot mutate stored state by accident.
"""

import copy
import itertools
from typing import AsyncContextManager, Optional

from eventdesk.core.locks import KeyedLocks
from eventdesk.domain.errors import CheckInIntegrityError, DuplicateRegistrationError
from eventdesk.domain.models import (
    CheckInRecord,
    Event,
    Person,
    Registration,
    RegistrationStatus,
    utcnow,
)
from eventdesk.stores.interfaces import RegistrationStore


class InMemoryStore(RegistrationStore):
    def __init__(self) -> None:
        self._people: dict[int, Person] = {}
        self._events: dict[int, Event] = {}
        self._registrations: dict[int, Registration] = {}
        self._check_ins: dict[int, CheckInRecord] = {}
        self._person_ids = itertools.count(1)
        self._event_ids = itertools.count(1)
        self._registration_ids = itertools.count(1)
        self._guards = KeyedLocks()

    async def add_person(self, person: Person) -> Person:
        stored = copy.deepcopy(person)
        stored.id = next(self._person_ids)
        self._people[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_person(self, person_id: int) -> Optional[Person]:
        return copy.deepcopy(self._people.get(person_id))

    async def get_person_by_email(self, email: str) -> Optional[Person]:
        wanted = email.strip().lower()
        for person in self._people.values():
            if person.email.lower() == wanted:
                return copy.deepcopy(person)
        return None

    async def add_event(self, event: Event) -> Event:
        stored = copy.deepcopy(event)
        stored.id = next(self._event_ids)
        self._events[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_event(self, event_id: int) -> Optional[Event]:
        return copy.deepcopy(self._events.get(event_id))

    async def list_events(self) -> list[Event]:
        return [copy.deepcopy(e) for e in sorted(self._events.values(), key=lambda e: e.start_time)]

    async def add_registration(self, registration: Registration) -> Registration:
        for existing in self._registrations.values():
            if (
                existing.event_id == registration.event_id
                and existing.person_id == registration.person_id
                and existing.is_active
            ):
                raise DuplicateRegistrationError(registration.event_id, registration.person_id)
        stored = copy.deepcopy(registration)
        stored.id = next(self._registration_ids)
        self._registrations[stored.id] = stored
        return copy.deepcopy(stored)

    async def save_registration(self, registration: Registration) -> Registration:
        stored = copy.deepcopy(registration)
        stored.updated_at = utcnow()
        self._registrations[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_registration(self, registration_id: int) -> Optional[Registration]:
        return copy.deepcopy(self._registrations.get(registration_id))

    async def find_registration(self, event_id: int, person_id: int) -> Optional[Registration]:
        matches = [
            r for r in self._registrations.values()
            if r.event_id == event_id and r.person_id == person_id
        ]
        if not matches:
            return None
        active = [r for r in matches if r.is_active]
        if active:
            return copy.deepcopy(active[0])
        return copy.deepcopy(max(matches, key=lambda r: r.id))

    async def list_event_registrations(self, event_id: int) -> list[Registration]:
        return [
            copy.deepcopy(r)
            for r in sorted(self._registrations.values(), key=lambda r: (r.created_at, r.id))
            if r.event_id == event_id
        ]

    async def list_person_registrations(self, person_id: int) -> list[Registration]:
        return [
            copy.deepcopy(r)
            for r in sorted(self._registrations.values(), key=lambda r: (r.created_at, r.id))
            if r.person_id == person_id
        ]

    async def list_waitlist(self, event_id: int, tier: Optional[str] = None) -> list[Registration]:
        waitlisted = [
            r for r in self._registrations.values()
            if r.event_id == event_id
            and r.status == RegistrationStatus.WAITLISTED
            and (tier is None or r.tier == tier)
        ]
        return [copy.deepcopy(r) for r in sorted(waitlisted, key=lambda r: r.waitlist_position)]

    async def shift_waitlist(self, event_id: int, after_position: int) -> int:
        changed = 0
        for registration in self._registrations.values():
            if (
                registration.event_id == event_id
                and registration.status == RegistrationStatus.WAITLISTED
                and registration.waitlist_position is not None
                and registration.waitlist_position > after_position
            ):
                registration.waitlist_position -= 1
                registration.updated_at = utcnow()
                changed += 1
        return changed

    async def list_seat_holders(self, event_id: int, tier: str) -> list[Registration]:
        return [
            copy.deepcopy(r)
            for r in self._registrations.values()
            if r.event_id == event_id and r.tier == tier and r.status.holds_seat
        ]

    async def check_in(self, record: CheckInRecord) -> bool:
        if record.registration_id in self._check_ins:
            return False
        registration = self._registrations.get(record.registration_id)
        if registration is None or registration.status != RegistrationStatus.REGISTERED:
            raise CheckInIntegrityError(
                "Check-in attempted on a registration that is not REGISTERED",
                registration_id=record.registration_id,
                status=registration.status.value if registration else None,
            )
        self._check_ins[record.registration_id] = record
        registration.status = RegistrationStatus.ATTENDED
        registration.updated_at = record.checked_in_at
        return True

    async def get_check_in(self, registration_id: int) -> Optional[CheckInRecord]:
        return self._check_ins.get(registration_id)

    def guard(self, scope: str, key: int) -> AsyncContextManager[None]:
        return self._guards.hold((scope, key))
