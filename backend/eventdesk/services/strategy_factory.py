"""
Capacity ledger factory.
Configures which ledger implementation backs admission control.
"""

from eventdesk.core.config import Settings
from eventdesk.services.interfaces.ledger import CapacityLedger
from eventdesk.services.interfaces.memory_ledger import InMemoryCapacityLedger


def build_ledger(settings: Settings) -> CapacityLedger:
    """
    Get configured ledger.

    Strategy selection via LEDGER_BACKEND:
    - memory: InMemoryCapacityLedger (single worker, default)
    - redis: RedisCapacityLedger (shared by all workers)
    """
    backend = settings.LEDGER_BACKEND.lower()

    if backend == 'redis':
        from eventdesk.infrastructure import get_redis
        from eventdesk.services.redis_ledger import RedisCapacityLedger

        return RedisCapacityLedger(get_redis(settings.REDIS_URL))
    if backend == 'memory':
        return InMemoryCapacityLedger()
    raise ValueError(f"Unknown LEDGER_BACKEND: {settings.LEDGER_BACKEND}")
