"""
Tests for the in-memory capacity ledger, including concurrent reservations.
"""

import asyncio

import pytest

from eventdesk.domain.errors import LedgerIntegrityError
from eventdesk.services.interfaces.ledger import SeatToken
from eventdesk.services.interfaces.memory_ledger import InMemoryCapacityLedger

GA = "General Admission"


@pytest.mark.asyncio
async def test_reserve_until_full():
    ledger = InMemoryCapacityLedger()
    await ledger.sync(1, GA, capacity=2)

    first = await ledger.reserve(1, GA)
    second = await ledger.reserve(1, GA)
    third = await ledger.reserve(1, GA)

    assert first is not None and second is not None
    assert first.token != second.token
    assert third is None
    assert await ledger.taken(1, GA) == 2
    assert await ledger.remaining(1, GA) == 0


@pytest.mark.asyncio
async def test_concurrent_reservations_never_overshoot():
    """50 simultaneous reservations on 7 seats: exactly 7 succeed."""
    ledger = InMemoryCapacityLedger()
    await ledger.sync(1, GA, capacity=7)

    results = await asyncio.gather(*[ledger.reserve(1, GA) for _ in range(50)])

    granted = [r for r in results if r is not None]
    assert len(granted) == 7
    assert len({t.token for t in granted}) == 7
    assert await ledger.taken(1, GA) == 7


@pytest.mark.asyncio
async def test_release_is_idempotent():
    ledger = InMemoryCapacityLedger()
    await ledger.sync(1, GA, capacity=3)
    token = await ledger.reserve(1, GA)

    assert await ledger.release(token) is True
    assert await ledger.release(token) is False
    assert await ledger.taken(1, GA) == 0


@pytest.mark.asyncio
async def test_release_of_unknown_token_does_not_decrement():
    ledger = InMemoryCapacityLedger()
    await ledger.sync(1, GA, capacity=3)
    await ledger.reserve(1, GA)

    released = await ledger.release(SeatToken(token="never-issued", event_id=1, tier=GA))

    assert released is False
    assert await ledger.taken(1, GA) == 1


@pytest.mark.asyncio
async def test_tiers_are_independent():
    ledger = InMemoryCapacityLedger()
    await ledger.sync(1, "VIP", capacity=1)
    await ledger.sync(1, "Standard", capacity=2)

    assert await ledger.reserve(1, "VIP") is not None
    assert await ledger.reserve(1, "VIP") is None
    assert await ledger.reserve(1, "Standard") is not None
    assert await ledger.taken(1, "Standard") == 1


@pytest.mark.asyncio
async def test_unconfigured_entry_is_an_integrity_error():
    ledger = InMemoryCapacityLedger()
    with pytest.raises(LedgerIntegrityError):
        await ledger.reserve(99, GA)


@pytest.mark.asyncio
async def test_sync_rejects_more_holders_than_capacity():
    ledger = InMemoryCapacityLedger()
    with pytest.raises(LedgerIntegrityError):
        await ledger.sync(1, GA, capacity=1, held_tokens=["a", "b"])


@pytest.mark.asyncio
async def test_sync_restores_held_tokens():
    ledger = InMemoryCapacityLedger()
    await ledger.sync(1, GA, capacity=2, held_tokens=["kept"])

    assert await ledger.taken(1, GA) == 1
    assert await ledger.release(SeatToken(token="kept", event_id=1, tier=GA)) is True
    assert await ledger.taken(1, GA) == 0


@pytest.mark.asyncio
async def test_audit_log_reconstructs_counters():
    ledger = InMemoryCapacityLedger()
    await ledger.sync(1, "VIP", capacity=2)
    await ledger.sync(1, GA, capacity=5)

    tokens = [await ledger.reserve(1, GA) for _ in range(4)]
    await ledger.reserve(1, "VIP")
    await ledger.release(tokens[0])
    await ledger.release(tokens[0])  # ignored, not logged

    log = await ledger.audit_log(1)
    assert [e.action for e in log].count("release") == 1
    assert await ledger.reconstruct(1) == {"VIP": 1, GA: 3}
    assert await ledger.taken(1, GA) == 3
