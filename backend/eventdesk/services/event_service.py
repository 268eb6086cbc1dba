"""
Event service: creation, lookup, ledger reconciliation and attendee lists.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from eventdesk.core.logging import get_logger
from eventdesk.domain.errors import EventNotFoundError, InvalidEventError
from eventdesk.domain.models import Event, RegistrationStatus, utcnow
from eventdesk.services.interfaces.ledger import CapacityLedger
from eventdesk.stores.interfaces import RegistrationStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class TierAvailability:
    name: str
    capacity: int
    taken: int

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.taken, 0)


@dataclass(frozen=True)
class AttendeeRow:
    email: str
    display_name: str
    status: RegistrationStatus
    tier: str
    waitlist_position: Optional[int]


def validate_event(event: Event, now: datetime) -> None:
    """Raise InvalidEventError when the capacity/tier rules are broken."""
    if event.capacity < 1:
        raise InvalidEventError("Capacity must be at least 1")
    if event.end_time < event.start_time:
        raise InvalidEventError("Event end time must not be before its start time")
    if event.start_time <= now:
        raise InvalidEventError("Event date must be in the future")

    names = [tier.name for tier in event.tiers]
    if len(names) != len(set(names)):
        raise InvalidEventError("Ticket type names must be unique")
    for tier in event.tiers:
        if tier.capacity < 1:
            raise InvalidEventError(f"Ticket type '{tier.name}' must have a capacity of at least 1")
    if sum(tier.capacity for tier in event.tiers) > event.capacity:
        raise InvalidEventError("Ticket type capacities exceed the event capacity")

    field_names = [custom_field.name for custom_field in event.custom_fields]
    if len(field_names) != len(set(field_names)):
        raise InvalidEventError("Custom field names must be unique")


class EventService:
    def __init__(self, store: RegistrationStore, ledger: CapacityLedger, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._ledger = ledger
        self._clock = clock

    async def create_event(self, event: Event) -> Event:
        """Validate, persist and open ledger entries for every tier."""
        validate_event(event, self._clock())
        saved = await self._store.add_event(event)
        await self.sync_event(saved)

        logger.info(
            "event_created",
            event_id=saved.id,
            title=saved.title,
            capacity=saved.capacity,
            tiers=[tier.name for tier in saved.effective_tiers()],
        )
        return saved

    async def get_event(self, event_id: int) -> Event:
        event = await self._store.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def list_events(self, upcoming_only: bool = True) -> list[Event]:
        events = await self._store.list_events()
        if upcoming_only:
            now = self._clock()
            events = [event for event in events if event.is_open(now)]
        return events

    async def sync_event(self, event: Event) -> None:
        """Load tier capacities and the seat tokens held by the store into the ledger."""
        for tier in event.effective_tiers():
            holders = await self._store.list_seat_holders(event.id, tier.name)
            tokens = [r.seat_token for r in holders if r.seat_token]
            await self._ledger.sync(event.id, tier.name, tier.capacity, tokens)

    async def sync_all(self) -> int:
        """Reconcile the ledger with the store for every event. Returns events synced."""
        events = await self._store.list_events()
        for event in events:
            await self.sync_event(event)
        logger.info("ledger_reconciled", events=len(events))
        return len(events)

    async def availability(self, event: Event) -> list[TierAvailability]:
        return [
            TierAvailability(
                name=tier.name,
                capacity=tier.capacity,
                taken=await self._ledger.taken(event.id, tier.name),
            )
            for tier in event.effective_tiers()
        ]

    async def list_attendees(self, event_id: int) -> list[AttendeeRow]:
        """Everyone with a non-cancelled registration, oldest first."""
        await self.get_event(event_id)
        rows = []
        for registration in await self._store.list_event_registrations(event_id):
            if not registration.is_active:
                continue
            person = await self._store.get_person(registration.person_id)
            if person is None:
                continue
            rows.append(
                AttendeeRow(
                    email=person.email,
                    display_name=person.display_name,
                    status=registration.status,
                    tier=registration.tier,
                    waitlist_position=registration.waitlist_position,
                )
            )
        return rows
