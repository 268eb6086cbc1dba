"""
Redis-backed capacity ledger.
Implements CapacityLedger with Lua scripts so that reserve/release are a single
atomic step on the Redis server, shared by every API worker.

Key layout per (event, tier):
  ledger:{event_id}:{tier}:capacity   integer
  ledger:{event_id}:{tier}:held       set of seat tokens
  ledger:{event_id}:audit             list of JSON audit entries

Unlike an advisory admission gate, this ledger is authoritative: a Redis error
propagates to the caller and the join fails, it never "fails open".
"""

import json
import os
import uuid
from datetime import datetime
from typing import Iterable, Optional

import redis.asyncio as redis

from eventdesk.core.logging import get_logger
from eventdesk.core.metrics import record_integrity_violation, record_ledger_operation
from eventdesk.domain.errors import LedgerIntegrityError
from eventdesk.domain.models import utcnow
from eventdesk.services.interfaces.ledger import AuditEntry, CapacityLedger, SeatToken

logger = get_logger(__name__)

_SCRIPT_DIR = os.path.join(os.path.dirname(__file__), '../infrastructure')
with open(os.path.join(_SCRIPT_DIR, 'ledger_reserve.lua'), 'r') as f:
    RESERVE_SCRIPT = f.read()
with open(os.path.join(_SCRIPT_DIR, 'ledger_release.lua'), 'r') as f:
    RELEASE_SCRIPT = f.read()

FULL = -1
NOT_CONFIGURED = -2
OVERSHOOT = -3


def _keys(event_id: int, tier: str) -> list[str]:
    return [
        f"ledger:{event_id}:{tier}:capacity",
        f"ledger:{event_id}:{tier}:held",
        f"ledger:{event_id}:audit",
    ]


class RedisCapacityLedger(CapacityLedger):
    """
    Redis ledger.

    Use when:
    - More than one API worker serves the same events (with the SQL store,
      whose guard() serializes waitlist positions across workers)
    - Ledger state must survive an API restart
    """

    def __init__(self, client: redis.Redis):
        self.redis = client
        self.reserve_script = self.redis.register_script(RESERVE_SCRIPT)
        self.release_script = self.redis.register_script(RELEASE_SCRIPT)

    async def reserve(self, event_id: int, tier: str) -> Optional[SeatToken]:
        token = uuid.uuid4().hex
        result = int(await self.reserve_script(
            keys=_keys(event_id, tier),
            args=[token, event_id, tier, utcnow().isoformat()],
        ))

        if result == FULL:
            record_ledger_operation("reserve", "full")
            return None
        if result == NOT_CONFIGURED:
            raise LedgerIntegrityError("Ledger entry is not configured", event_id=event_id, tier=tier)
        if result == OVERSHOOT:
            record_integrity_violation("ledger_overshoot")
            logger.critical("ledger_counter_exceeds_capacity", event_id=event_id, tier=tier)
            raise LedgerIntegrityError("Ledger counter exceeds capacity", event_id=event_id, tier=tier)

        record_ledger_operation("reserve", "ok")
        logger.debug("seat_reserved", event_id=event_id, tier=tier, taken=result)
        return SeatToken(token=token, event_id=event_id, tier=tier)

    async def release(self, token: SeatToken) -> bool:
        result = int(await self.release_script(
            keys=_keys(token.event_id, token.tier),
            args=[token.token, token.event_id, token.tier, utcnow().isoformat()],
        ))
        if result < 0:
            record_ledger_operation("release", "duplicate")
            logger.warning(
                "seat_release_ignored",
                event_id=token.event_id,
                tier=token.tier,
                token=token.token,
                reason="token_not_held",
            )
            return False

        record_ledger_operation("release", "ok")
        logger.debug("seat_released", event_id=token.event_id, tier=token.tier, taken=result)
        return True

    async def sync(self, event_id: int, tier: str, capacity: int, held_tokens: Iterable[str] = ()) -> None:
        held = list(set(held_tokens))
        if len(held) > capacity:
            record_integrity_violation("ledger_sync_overshoot")
            logger.critical("ledger_sync_exceeds_capacity", event_id=event_id, tier=tier, held=len(held), capacity=capacity)
            raise LedgerIntegrityError(
                "Held seats exceed tier capacity", event_id=event_id, tier=tier, held=len(held), capacity=capacity
            )

        capacity_key, held_key, audit_key = _keys(event_id, tier)
        audit = json.dumps({
            "event_id": event_id,
            "tier": tier,
            "action": "sync",
            "token": None,
            "taken": len(held),
            "capacity": capacity,
            "at": utcnow().isoformat(),
        })
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(capacity_key, capacity)
            pipe.delete(held_key)
            if held:
                pipe.sadd(held_key, *held)
            pipe.rpush(audit_key, audit)
            await pipe.execute()
        logger.info("ledger_synced", event_id=event_id, tier=tier, capacity=capacity, taken=len(held))

    async def taken(self, event_id: int, tier: str) -> int:
        return int(await self.redis.scard(_keys(event_id, tier)[1]))

    async def capacity(self, event_id: int, tier: str) -> int:
        value = await self.redis.get(_keys(event_id, tier)[0])
        if value is None:
            raise LedgerIntegrityError("Ledger entry is not configured", event_id=event_id, tier=tier)
        return int(value)

    async def audit_log(self, event_id: int) -> list[AuditEntry]:
        raw_entries = await self.redis.lrange(f"ledger:{event_id}:audit", 0, -1)
        entries = []
        for raw in raw_entries:
            data = json.loads(raw)
            entries.append(AuditEntry(
                event_id=int(data["event_id"]),
                tier=data["tier"],
                action=data["action"],
                token=data.get("token") or None,
                taken=int(data["taken"]),
                capacity=int(data["capacity"]),
                at=datetime.fromisoformat(data["at"]),
            ))
        return entries
