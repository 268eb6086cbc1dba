"""Store interface (repository pattern).

Stores must be swappable and return domain models. They own persistence only:
status transitions are decided by the admission controller, the promoter and
the verifier, never by a store.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Optional

from eventdesk.domain.models import CheckInRecord, Event, Person, Registration


class RegistrationStore(ABC):
    """Interface for people, events, registrations and check-in records."""

    # People

    @abstractmethod
    async def add_person(self, person: Person) -> Person:
        ...

    @abstractmethod
    async def get_person(self, person_id: int) -> Optional[Person]:
        ...

    @abstractmethod
    async def get_person_by_email(self, email: str) -> Optional[Person]:
        """Case-insensitive email lookup."""
        ...

    # Events

    @abstractmethod
    async def add_event(self, event: Event) -> Event:
        ...

    @abstractmethod
    async def get_event(self, event_id: int) -> Optional[Event]:
        ...

    @abstractmethod
    async def list_events(self) -> list[Event]:
        """All events ordered by start time."""
        ...

    # Registrations

    @abstractmethod
    async def add_registration(self, registration: Registration) -> Registration:
        """Insert a registration and assign its id.

        Raises:
            DuplicateRegistrationError: If the person already holds a
                non-cancelled registration for the event.
        """
        ...

    @abstractmethod
    async def save_registration(self, registration: Registration) -> Registration:
        """Persist status, tier, waitlist position, seat token and ticket code."""
        ...

    @abstractmethod
    async def get_registration(self, registration_id: int) -> Optional[Registration]:
        ...

    @abstractmethod
    async def find_registration(self, event_id: int, person_id: int) -> Optional[Registration]:
        """The non-cancelled registration for the pair, else the most recent cancelled one."""
        ...

    @abstractmethod
    async def list_event_registrations(self, event_id: int) -> list[Registration]:
        """All registrations of an event, oldest first."""
        ...

    @abstractmethod
    async def list_person_registrations(self, person_id: int) -> list[Registration]:
        ...

    @abstractmethod
    async def list_waitlist(self, event_id: int, tier: Optional[str] = None) -> list[Registration]:
        """WAITLISTED registrations ordered by waitlist position."""
        ...

    @abstractmethod
    async def shift_waitlist(self, event_id: int, after_position: int) -> int:
        """Decrement every waitlist position greater than after_position. Returns rows changed."""
        ...

    @abstractmethod
    async def list_seat_holders(self, event_id: int, tier: str) -> list[Registration]:
        """REGISTERED and ATTENDED registrations of one tier (ledger reconciliation)."""
        ...

    # Check-in

    @abstractmethod
    async def check_in(self, record: CheckInRecord) -> bool:
        """Atomically create the check-in record and mark the registration ATTENDED.

        Returns False, changing nothing, when a record already exists.

        Raises:
            CheckInIntegrityError: If the registration is not REGISTERED.
        """
        ...

    @abstractmethod
    async def get_check_in(self, registration_id: int) -> Optional[CheckInRecord]:
        ...

    # Coordination

    @abstractmethod
    def guard(self, scope: str, key: int) -> AsyncContextManager[None]:
        """Exclusive section for one event or registration.

        Held around read-then-write sequences (waitlist position assignment,
        cancel with promotion, check-in) so that every process sharing the
        store sees them serialized, not only coroutines of one worker.
        `scope` is "event" or "registration".
        """
        ...
