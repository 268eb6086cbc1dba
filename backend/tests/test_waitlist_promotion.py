"""
Tests for waitlist promotion edge cases and for waitlist ordering when more
than one API worker shares the same store and ledger.
"""

import asyncio
from datetime import datetime, timezone, timedelta
from typing import Optional

import pytest

from eventdesk.domain.errors import JoinOutcome
from eventdesk.domain.models import GENERAL_ADMISSION, Event, Person, RegistrationStatus
from eventdesk.services.container import build_services
from eventdesk.services.interfaces.ledger import SeatToken
from eventdesk.services.interfaces.memory_ledger import InMemoryCapacityLedger
from eventdesk.stores.memory import InMemoryStore


class SlowWaitlistStore(InMemoryStore):
    """Yields to the loop after reading the waitlist, like a database round trip."""

    async def list_waitlist(self, event_id: int, tier: Optional[str] = None):
        waitlist = await super().list_waitlist(event_id, tier)
        await asyncio.sleep(0)
        return waitlist


class CancelAfterListingStore(InMemoryStore):
    """Cancels one waitlisted registration right after the waitlist was read."""

    def __init__(self) -> None:
        super().__init__()
        self.cancel_after_listing: Optional[int] = None

    async def list_waitlist(self, event_id: int, tier: Optional[str] = None):
        waitlist = await super().list_waitlist(event_id, tier)
        if self.cancel_after_listing is not None:
            registration = await self.get_registration(self.cancel_after_listing)
            registration.status = RegistrationStatus.CANCELLED
            registration.waitlist_position = None
            await self.save_registration(registration)
            self.cancel_after_listing = None
        return waitlist


class FlakyLedger(InMemoryCapacityLedger):
    """Reports "full" for the next `failures` reservations."""

    def __init__(self) -> None:
        super().__init__()
        self.failures = 0

    async def reserve(self, event_id: int, tier: str) -> Optional[SeatToken]:
        if self.failures:
            self.failures -= 1
            return None
        return await super().reserve(event_id, tier)


async def create_event(services, capacity: int) -> Event:
    start = datetime.now(timezone.utc) + timedelta(days=7)
    return await services.events.create_event(
        Event(id=None, title="Promotion Night", start_time=start, end_time=start + timedelta(hours=2), capacity=capacity)
    )


async def create_people(store, count: int) -> list[Person]:
    return [await store.add_person(Person(id=None, email=f"guest{i}@example.com")) for i in range(count)]


async def assert_no_leaked_seats(services, event_id: int) -> None:
    holders = await services.store.list_seat_holders(event_id, GENERAL_ADMISSION)
    assert await services.ledger.taken(event_id, GENERAL_ADMISSION) == len(holders)


@pytest.mark.asyncio
async def test_two_workers_assign_distinct_waitlist_positions(settings):
    store, ledger = SlowWaitlistStore(), InMemoryCapacityLedger()
    worker_a = build_services(settings, store, ledger)
    worker_b = build_services(settings, store, ledger)
    event = await create_event(worker_a, capacity=1)
    first, *rest = await create_people(store, 7)
    await worker_a.admission.join(event.id, first.id)

    results = await asyncio.gather(*[
        (worker_a if i % 2 else worker_b).admission.join(event.id, person.id)
        for i, person in enumerate(rest)
    ])

    assert {r.outcome for r in results} == {JoinOutcome.WAITLISTED}
    assert sorted(r.registration.waitlist_position for r in results) == list(range(1, 7))
    await worker_a.publisher.drain()
    await worker_b.publisher.drain()


@pytest.mark.asyncio
async def test_two_workers_cancel_and_join_keep_waitlist_contiguous(settings):
    store, ledger = SlowWaitlistStore(), InMemoryCapacityLedger()
    worker_a = build_services(settings, store, ledger)
    worker_b = build_services(settings, store, ledger)
    event = await create_event(worker_a, capacity=1)
    seated, w1, w2, w3, late = await create_people(store, 5)
    await worker_a.admission.join(event.id, seated.id)
    r1 = (await worker_a.admission.join(event.id, w1.id)).registration
    await worker_a.admission.join(event.id, w2.id)
    await worker_a.admission.join(event.id, w3.id)

    await asyncio.gather(
        worker_a.admission.cancel(r1.id),
        worker_b.admission.join(event.id, late.id),
    )

    positions = [r.waitlist_position for r in await store.list_waitlist(event.id)]
    assert positions == [1, 2, 3]
    await worker_a.publisher.drain()
    await worker_b.publisher.drain()


@pytest.mark.asyncio
async def test_failed_reservation_moves_on_to_the_next_position(settings):
    store, ledger = InMemoryStore(), FlakyLedger()
    services = build_services(settings, store, ledger)
    event = await create_event(services, capacity=1)
    a, b, c = await create_people(store, 3)
    ra = (await services.admission.join(event.id, a.id)).registration
    rb = (await services.admission.join(event.id, b.id)).registration
    rc = (await services.admission.join(event.id, c.id)).registration

    ledger.failures = 1
    result = await services.admission.cancel(ra.id)

    assert [r.id for r in result.promoted] == [rc.id]
    skipped = await store.get_registration(rb.id)
    assert skipped.status == RegistrationStatus.WAITLISTED
    assert skipped.waitlist_position == 1
    assert await ledger.taken(event.id, GENERAL_ADMISSION) == 1
    await assert_no_leaked_seats(services, event.id)
    await services.publisher.drain()


@pytest.mark.asyncio
async def test_candidate_cancelled_after_listing_is_skipped(settings):
    store, ledger = CancelAfterListingStore(), InMemoryCapacityLedger()
    services = build_services(settings, store, ledger)
    event = await create_event(services, capacity=1)
    a, b, c = await create_people(store, 3)
    ra = (await services.admission.join(event.id, a.id)).registration
    rb = (await services.admission.join(event.id, b.id)).registration
    rc = (await services.admission.join(event.id, c.id)).registration

    store.cancel_after_listing = rb.id
    result = await services.admission.cancel(ra.id)

    assert [r.id for r in result.promoted] == [rc.id]
    assert (await store.get_registration(rb.id)).status == RegistrationStatus.CANCELLED
    assert (await store.get_registration(rc.id)).seat_token
    assert await ledger.taken(event.id, GENERAL_ADMISSION) == 1
    audit = await ledger.audit_log(event.id)
    assert [e.action for e in audit[-4:]] == ["release", "reserve", "release", "reserve"]
    # the seat reserved for the cancelled candidate went straight back
    assert audit[-3].token == audit[-2].token
    assert audit[-1].token == (await store.get_registration(rc.id)).seat_token
    await assert_no_leaked_seats(services, event.id)
    await services.publisher.drain()


@pytest.mark.asyncio
async def test_promotion_never_exceeds_seats_freed(settings):
    store, ledger = InMemoryStore(), InMemoryCapacityLedger()
    services = build_services(settings, store, ledger)
    event = await create_event(services, capacity=1)
    a, *waiting = await create_people(store, 4)
    await services.admission.join(event.id, a.id)
    for person in waiting:
        await services.admission.join(event.id, person.id)

    nothing = await services.promoter.promote(event.id, GENERAL_ADMISSION, seats_freed=0)
    full = await services.promoter.promote(event.id, GENERAL_ADMISSION, seats_freed=1)

    assert nothing == []
    assert full == []
    assert len(await store.list_waitlist(event.id)) == 3
    await assert_no_leaked_seats(services, event.id)
    await services.publisher.drain()
