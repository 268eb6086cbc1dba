"""
Tests for per-person join throttling.
"""

import asyncio
import os

import pytest

from eventdesk.core.config import Settings
from eventdesk.services.throttle import MEMORY_STORAGE, JoinThrottle, storage_uri_for


@pytest.mark.asyncio
async def test_allows_up_to_limit_within_window():
    throttle = JoinThrottle(limit=3, window_seconds=10)

    assert [await throttle.allow("p1") for _ in range(4)] == [True, True, True, False]


@pytest.mark.asyncio
async def test_window_moves_on():
    throttle = JoinThrottle(limit=2, window_seconds=1)
    assert await throttle.allow("p1") is True
    assert await throttle.allow("p1") is True
    assert await throttle.allow("p1") is False

    await asyncio.sleep(1.1)

    assert await throttle.allow("p1") is True


@pytest.mark.asyncio
async def test_keys_are_independent():
    throttle = JoinThrottle(limit=1, window_seconds=10)

    assert await throttle.allow("p1") is True
    assert await throttle.allow("p2") is True
    assert await throttle.allow("p1") is False


@pytest.mark.asyncio
async def test_reset_clears_a_key():
    throttle = JoinThrottle(limit=1, window_seconds=10)
    await throttle.allow("p1")

    await throttle.reset("p1")

    assert await throttle.allow("p1") is True


@pytest.mark.asyncio
async def test_raising_the_limit_takes_effect():
    throttle = JoinThrottle(limit=1, window_seconds=10)
    await throttle.allow("p1")

    throttle.limit = 3

    assert throttle.limit == 3
    assert await throttle.allow("p1") is True


def test_limit_and_window_must_be_positive():
    with pytest.raises(ValueError):
        JoinThrottle(limit=0, window_seconds=10)
    with pytest.raises(ValueError):
        JoinThrottle(limit=5, window_seconds=0)


def test_storage_follows_the_ledger_backend():
    memory = Settings(LEDGER_BACKEND="memory")
    shared = Settings(LEDGER_BACKEND="redis", REDIS_URL="redis://cache:6379/2")
    explicit = Settings(LEDGER_BACKEND="redis", JOIN_RATE_STORAGE_URI="async+memory://")

    assert storage_uri_for(memory) == MEMORY_STORAGE
    assert storage_uri_for(shared) == "async+redis://cache:6379/2"
    assert storage_uri_for(explicit) == "async+memory://"


@pytest.mark.asyncio
@pytest.mark.skipif(not os.environ.get("TEST_REDIS_URL"), reason="TEST_REDIS_URL not set")
async def test_workers_share_the_budget_through_redis():
    uri = f"async+{os.environ['TEST_REDIS_URL']}"
    worker_a = JoinThrottle(limit=2, window_seconds=5, storage_uri=uri)
    worker_b = JoinThrottle(limit=2, window_seconds=5, storage_uri=uri)
    key = f"shared-{os.getpid()}"
    await worker_a.reset(key)

    results = [await worker_a.allow(key), await worker_b.allow(key), await worker_b.allow(key)]

    assert results == [True, True, False]
    await worker_a.reset(key)
