"""
Redis client for the shared capacity ledger.
Separated from business logic for clean architecture.
"""

from typing import Optional

import redis.asyncio as redis

from eventdesk.core.config import get_settings
from eventdesk.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Process-wide async Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls, url: Optional[str] = None) -> redis.Redis:
        """Get or create Redis client instance."""
        if cls._instance is None:
            url = url or get_settings().REDIS_URL
            cls._instance = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            logger.info("redis_client_created", url=url)
        return cls._instance

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._instance:
            await cls._instance.aclose()
            cls._instance = None


def get_redis(url: Optional[str] = None) -> redis.Redis:
    """Get Redis client instance."""
    return RedisClient.get_client(url)
