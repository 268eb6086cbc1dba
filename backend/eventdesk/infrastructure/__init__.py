"""
Shared external services: the Redis connection used by the capacity ledger,
plus the Lua scripts it loads (ledger_reserve.lua, ledger_release.lua).
"""

from .redis_client import get_redis, RedisClient

__all__ = ["get_redis", "RedisClient"]
