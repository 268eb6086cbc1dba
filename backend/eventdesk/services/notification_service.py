"""
Collaborator-facing registration signals.

The admission controller, promoter and verifier publish a signal after their
storage mutation is done. Delivery is fire-and-forget: every subscriber runs
in its own asyncio task, so a slow or failing notifier never delays or fails
a join, cancel or check-in.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional

from eventdesk.core.logging import get_logger
from eventdesk.core.metrics import notification_failures
from eventdesk.domain.models import Registration, RegistrationStatus, utcnow

logger = get_logger(__name__)


class SignalKind(str, Enum):
    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    PROMOTED = "promoted"
    CANCELLED = "cancelled"
    ATTENDED = "attended"


@dataclass(frozen=True)
class RegistrationSignal:
    kind: SignalKind
    event_id: int
    person_id: int
    registration_id: int
    status: RegistrationStatus
    waitlist_position: Optional[int] = None
    at: datetime = field(default_factory=utcnow)

    @classmethod
    def for_registration(cls, kind: SignalKind, registration: Registration) -> "RegistrationSignal":
        return cls(
            kind=kind,
            event_id=registration.event_id,
            person_id=registration.person_id,
            registration_id=registration.id,
            status=registration.status,
            waitlist_position=registration.waitlist_position,
        )


Subscriber = Callable[[RegistrationSignal], Awaitable[None]]


class NotificationPublisher:
    def __init__(self) -> None:
        self._subscribers: list[tuple[Subscriber, Optional[frozenset[SignalKind]]]] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, handler: Subscriber, kinds: Optional[Iterable[SignalKind]] = None) -> None:
        self._subscribers.append((handler, frozenset(kinds) if kinds is not None else None))

    def publish(self, signal: RegistrationSignal) -> None:
        """Schedule delivery and return immediately."""
        for handler, kinds in self._subscribers:
            if kinds is not None and signal.kind not in kinds:
                continue
            task = asyncio.create_task(self._deliver(handler, signal))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, handler: Subscriber, signal: RegistrationSignal) -> None:
        try:
            await handler(signal)
        except Exception:
            notification_failures.labels(kind=signal.kind.value).inc()
            logger.exception(
                "notification_delivery_failed",
                kind=signal.kind.value,
                event_id=signal.event_id,
                person_id=signal.person_id,
                handler=getattr(handler, "__qualname__", repr(handler)),
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


async def log_signal(signal: RegistrationSignal) -> None:
    """Default subscriber: leaves a trace for the notification collaborator."""
    logger.info(
        "registration_signal",
        kind=signal.kind.value,
        event_id=signal.event_id,
        person_id=signal.person_id,
        registration_id=signal.registration_id,
        status=signal.status.value,
        waitlist_position=signal.waitlist_position,
    )
