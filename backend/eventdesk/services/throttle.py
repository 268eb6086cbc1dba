"""
Per-person burst control for join attempts.

Moving window from the `limits` library: at most `limit` attempts per person
within `window_seconds`. Counters expire with the window. With the Redis ledger
they live in Redis too, so every API worker counts against the same budget.
Independent of capacity: a throttled attempt never reaches the ledger.
"""

from typing import Hashable

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string

from eventdesk.core.config import Settings
from eventdesk.core.logging import get_logger

logger = get_logger(__name__)

MEMORY_STORAGE = "async+memory://"


def storage_uri_for(settings: Settings) -> str:
    """Explicit JOIN_RATE_STORAGE_URI, else the ledger's Redis, else process memory."""
    if settings.JOIN_RATE_STORAGE_URI:
        return settings.JOIN_RATE_STORAGE_URI
    if settings.LEDGER_BACKEND.lower() == "redis":
        return f"async+{settings.REDIS_URL}"
    return MEMORY_STORAGE


class JoinThrottle:
    def __init__(self, limit: int, window_seconds: int, storage_uri: str = MEMORY_STORAGE):
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        self.window_seconds = int(window_seconds)
        self.limit = limit
        self._limiter = MovingWindowRateLimiter(storage_from_string(storage_uri))

    @property
    def limit(self) -> int:
        return self._item.amount

    @limit.setter
    def limit(self, value: int) -> None:
        if value < 1:
            raise ValueError("limit must be >= 1")
        self._item: RateLimitItem = RateLimitItemPerSecond(value, self.window_seconds, namespace="JOIN")

    async def allow(self, key: Hashable) -> bool:
        """Count an attempt for key. False when the key is over its burst budget."""
        allowed = await self._limiter.hit(self._item, str(key))
        if not allowed:
            logger.info("join_throttled", key=str(key), limit=self.limit, window_seconds=self.window_seconds)
        return allowed

    async def reset(self, key: Hashable) -> None:
        await self._limiter.clear(self._item, str(key))
