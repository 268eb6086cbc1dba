"""
In-process capacity ledger.
One asyncio lock per (event, tier); the counter is the size of the held-token set.
"""

import uuid
from dataclasses import dataclass, field
from typing import Iterable, Optional

from eventdesk.core.locks import KeyedLocks
from eventdesk.core.logging import get_logger
from eventdesk.core.metrics import record_integrity_violation, record_ledger_operation
from eventdesk.domain.errors import LedgerIntegrityError
from eventdesk.domain.models import utcnow
from eventdesk.services.interfaces.ledger import AuditEntry, CapacityLedger, SeatToken

logger = get_logger(__name__)


@dataclass
class _Entry:
    capacity: int
    held: set[str] = field(default_factory=set)


class InMemoryCapacityLedger(CapacityLedger):
    """
    Single-process ledger.

    Use when:
    - One API worker owns the event's capacity state
    - Tests and local development
    """

    def __init__(self):
        self._entries: dict[tuple[int, str], _Entry] = {}
        self._audit: dict[int, list[AuditEntry]] = {}
        self._locks = KeyedLocks()

    def _entry(self, event_id: int, tier: str) -> _Entry:
        entry = self._entries.get((event_id, tier))
        if entry is None:
            raise LedgerIntegrityError(
                "Ledger entry is not configured",
                event_id=event_id,
                tier=tier,
            )
        return entry

    def _append(self, event_id: int, tier: str, action: str, token: Optional[str], entry: _Entry):
        self._audit.setdefault(event_id, []).append(
            AuditEntry(
                event_id=event_id,
                tier=tier,
                action=action,
                token=token,
                taken=len(entry.held),
                capacity=entry.capacity,
                at=utcnow(),
            )
        )

    async def reserve(self, event_id: int, tier: str) -> Optional[SeatToken]:
        async with self._locks.hold((event_id, tier)):
            entry = self._entry(event_id, tier)
            taken = len(entry.held)
            if taken > entry.capacity:
                record_integrity_violation("ledger_overshoot")
                logger.critical(
                    "ledger_counter_exceeds_capacity",
                    event_id=event_id,
                    tier=tier,
                    taken=taken,
                    capacity=entry.capacity,
                )
                raise LedgerIntegrityError(
                    "Ledger counter exceeds capacity",
                    event_id=event_id,
                    tier=tier,
                    taken=taken,
                    capacity=entry.capacity,
                )
            if taken == entry.capacity:
                record_ledger_operation("reserve", "full")
                return None

            token = uuid.uuid4().hex
            entry.held.add(token)
            self._append(event_id, tier, "reserve", token, entry)

        record_ledger_operation("reserve", "ok")
        logger.debug("seat_reserved", event_id=event_id, tier=tier, taken=taken + 1)
        return SeatToken(token=token, event_id=event_id, tier=tier)

    async def release(self, token: SeatToken) -> bool:
        async with self._locks.hold((token.event_id, token.tier)):
            entry = self._entry(token.event_id, token.tier)
            if token.token not in entry.held:
                record_ledger_operation("release", "duplicate")
                logger.warning(
                    "seat_release_ignored",
                    event_id=token.event_id,
                    tier=token.tier,
                    token=token.token,
                    reason="token_not_held",
                )
                return False
            entry.held.discard(token.token)
            self._append(token.event_id, token.tier, "release", token.token, entry)
            taken = len(entry.held)

        record_ledger_operation("release", "ok")
        logger.debug("seat_released", event_id=token.event_id, tier=token.tier, taken=taken)
        return True

    async def sync(self, event_id: int, tier: str, capacity: int, held_tokens: Iterable[str] = ()) -> None:
        async with self._locks.hold((event_id, tier)):
            held = set(held_tokens)
            if len(held) > capacity:
                record_integrity_violation("ledger_sync_overshoot")
                logger.critical(
                    "ledger_sync_exceeds_capacity",
                    event_id=event_id,
                    tier=tier,
                    held=len(held),
                    capacity=capacity,
                )
                raise LedgerIntegrityError(
                    "Held seats exceed tier capacity",
                    event_id=event_id,
                    tier=tier,
                    held=len(held),
                    capacity=capacity,
                )
            entry = _Entry(capacity=capacity, held=held)
            self._entries[(event_id, tier)] = entry
            self._append(event_id, tier, "sync", None, entry)
        logger.info("ledger_synced", event_id=event_id, tier=tier, capacity=capacity, taken=len(held))

    async def taken(self, event_id: int, tier: str) -> int:
        return len(self._entry(event_id, tier).held)

    async def capacity(self, event_id: int, tier: str) -> int:
        return self._entry(event_id, tier).capacity

    async def audit_log(self, event_id: int) -> list[AuditEntry]:
        return list(self._audit.get(event_id, []))
