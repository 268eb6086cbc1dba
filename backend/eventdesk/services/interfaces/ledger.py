"""
Capacity ledger interface.
The ledger is the single source of truth for "is a seat available" and the
only state shared between concurrent callers on the same (event, tier).
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional


@dataclass(frozen=True)
class SeatToken:
    """Proof that one seat in (event_id, tier) was reserved."""

    token: str
    event_id: int
    tier: str


@dataclass(frozen=True)
class AuditEntry:
    event_id: int
    tier: str
    action: str  # reserve, release, sync
    token: Optional[str]
    taken: int
    capacity: int
    at: datetime


class CapacityLedger(ABC):
    """
    Interface for capacity ledgers.

    Implementations:
    - InMemoryCapacityLedger: per-key asyncio locks, single process
    - RedisCapacityLedger: Lua compare-and-increment, shared by workers
    """

    @abstractmethod
    async def reserve(self, event_id: int, tier: str) -> Optional[SeatToken]:
        """
        Atomically take one seat.

        Returns:
            SeatToken if a seat was taken
            None if the tier is full (no partial reservation is left behind)
        """
        pass

    @abstractmethod
    async def release(self, token: SeatToken) -> bool:
        """
        Give a seat back.

        Idempotent: releasing a token that is not held logs a warning and
        returns False without decrementing.
        """
        pass

    @abstractmethod
    async def sync(self, event_id: int, tier: str, capacity: int, held_tokens: Iterable[str] = ()) -> None:
        """
        Load capacity and currently held seat tokens for one entry (reconciliation).

        Args:
            event_id: Event ID
            tier: Ticket tier name
            capacity: Tier capacity
            held_tokens: Seat tokens of registrations currently holding a seat
        """
        pass

    @abstractmethod
    async def taken(self, event_id: int, tier: str) -> int:
        pass

    @abstractmethod
    async def capacity(self, event_id: int, tier: str) -> int:
        pass

    @abstractmethod
    async def audit_log(self, event_id: int) -> list[AuditEntry]:
        """Every reserve/release/sync applied to the event, oldest first."""
        pass

    async def remaining(self, event_id: int, tier: str) -> int:
        return max(await self.capacity(event_id, tier) - await self.taken(event_id, tier), 0)

    async def reconstruct(self, event_id: int) -> dict[str, int]:
        """Replay the audit log into per-tier counters."""
        counters: dict[str, int] = defaultdict(int)
        for entry in await self.audit_log(event_id):
            if entry.action == "reserve":
                counters[entry.tier] += 1
            elif entry.action == "release":
                counters[entry.tier] -= 1
            elif entry.action == "sync":
                counters[entry.tier] = entry.taken
        return dict(counters)
