"""
Tests for the Redis capacity ledger.
Requires a reachable Redis: set TEST_REDIS_URL, e.g. redis://localhost:6379/15.
"""

import asyncio
import os
import random

import pytest
import pytest_asyncio
import redis.asyncio as redis

from eventdesk.domain.errors import LedgerIntegrityError
from eventdesk.services.interfaces.ledger import SeatToken
from eventdesk.services.redis_ledger import RedisCapacityLedger

REDIS_URL = os.environ.get("TEST_REDIS_URL")

pytestmark = pytest.mark.skipif(not REDIS_URL, reason="TEST_REDIS_URL not set")

GA = "General Admission"


@pytest_asyncio.fixture
async def client():
    client = redis.from_url(REDIS_URL, decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def event_id(client):
    event_id = random.randint(10_000_000, 99_999_999)
    yield event_id
    keys = [key async for key in client.scan_iter(match=f"ledger:{event_id}:*")]
    if keys:
        await client.delete(*keys)


@pytest.mark.asyncio
async def test_concurrent_reservations_never_overshoot(client, event_id):
    ledger = RedisCapacityLedger(client)
    await ledger.sync(event_id, GA, capacity=5)

    results = await asyncio.gather(*[ledger.reserve(event_id, GA) for _ in range(30)])

    assert len([r for r in results if r is not None]) == 5
    assert await ledger.taken(event_id, GA) == 5
    assert await ledger.capacity(event_id, GA) == 5


@pytest.mark.asyncio
async def test_release_is_idempotent(client, event_id):
    ledger = RedisCapacityLedger(client)
    await ledger.sync(event_id, GA, capacity=2)
    token = await ledger.reserve(event_id, GA)

    assert await ledger.release(token) is True
    assert await ledger.release(token) is False
    assert await ledger.release(SeatToken(token="never-issued", event_id=event_id, tier=GA)) is False
    assert await ledger.taken(event_id, GA) == 0


@pytest.mark.asyncio
async def test_unconfigured_entry(client, event_id):
    ledger = RedisCapacityLedger(client)
    with pytest.raises(LedgerIntegrityError):
        await ledger.reserve(event_id, "Nope")


@pytest.mark.asyncio
async def test_audit_log_reconstructs_counters(client, event_id):
    ledger = RedisCapacityLedger(client)
    await ledger.sync(event_id, GA, capacity=3, held_tokens=["restored"])
    token = await ledger.reserve(event_id, GA)
    await ledger.reserve(event_id, GA)
    await ledger.release(token)

    assert [e.action for e in await ledger.audit_log(event_id)] == ["sync", "reserve", "reserve", "release"]
    assert await ledger.reconstruct(event_id) == {GA: 2}
