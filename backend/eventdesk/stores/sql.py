"""SQLAlchemy-backed store.

One short transaction per call. Uniqueness invariants are enforced by the
schema (partial unique index on active registrations, unique check-in per
registration) and surfaced as domain errors or a False return.

guard() takes a PostgreSQL advisory lock so multi-step sections (waitlist
position assignment, cancel with promotion, check-in) are serialized across
API workers. Other dialects fall back to in-process locks.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Optional

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from eventdesk.core.locks import KeyedLocks
from eventdesk.core.logging import get_logger
from eventdesk.domain.errors import CheckInIntegrityError, DuplicateRegistrationError
from eventdesk.domain.models import (
    CheckInMethod,
    CheckInRecord,
    CustomField,
    Event,
    EventStatus,
    Person,
    Registration,
    RegistrationStatus,
    TicketTier,
    Visibility,
    utcnow,
)
from eventdesk.models import event as event_orm
from eventdesk.models import registration as registration_orm
from eventdesk.models import user as user_orm
from eventdesk.stores.interfaces import RegistrationStore

logger = get_logger(__name__)

# first key of the two-key pg_advisory_lock form
_GUARD_SCOPES = {"event": 1, "registration": 2}


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything is stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_person(row: user_orm.User) -> Person:
    return Person(id=row.id, email=row.email, display_name=row.display_name, role=row.role)


def _to_event(row: event_orm.Event) -> Event:
    return Event(
        id=row.id,
        title=row.title,
        location=row.location,
        start_time=_aware(row.start_time),
        end_time=_aware(row.end_time),
        capacity=row.capacity,
        tiers=[
            TicketTier(name=t["name"], capacity=int(t["capacity"]), price=Decimal(str(t.get("price", "0"))))
            for t in row.tiers or []
        ],
        custom_fields=[
            CustomField(name=f["name"], required=bool(f.get("required", False)), label=f.get("label"))
            for f in row.custom_fields or []
        ],
        invited_emails=list(row.invited_emails or []),
        visibility=Visibility(row.visibility),
        status=EventStatus(row.status),
        organizer_id=row.organizer_id,
    )


def _to_registration(row: registration_orm.Registration) -> Registration:
    return Registration(
        id=row.id,
        event_id=row.event_id,
        person_id=row.user_id,
        tier=row.tier,
        status=RegistrationStatus(row.status),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        waitlist_position=row.waitlist_position,
        answers=dict(row.answers or {}),
        seat_token=row.seat_token,
        ticket_code=row.ticket_code,
    )


def _to_check_in(row: registration_orm.CheckInRecord) -> CheckInRecord:
    return CheckInRecord(
        registration_id=row.registration_id,
        checked_in_at=_aware(row.checked_in_at),
        method=CheckInMethod(row.method),
        idempotency_key=row.idempotency_key,
    )


class SqlAlchemyStore(RegistrationStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._local_guards = KeyedLocks()

    async def add_person(self, person: Person) -> Person:
        async with self._session_factory() as session, session.begin():
            row = user_orm.User(email=person.email, display_name=person.display_name, role=person.role)
            session.add(row)
            await session.flush()
            return _to_person(row)

    async def get_person(self, person_id: int) -> Optional[Person]:
        async with self._session_factory() as session:
            row = await session.get(user_orm.User, person_id)
            return _to_person(row) if row else None

    async def get_person_by_email(self, email: str) -> Optional[Person]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(user_orm.User).where(func.lower(user_orm.User.email) == email.strip().lower())
            )
            row = result.scalar_one_or_none()
            return _to_person(row) if row else None

    async def add_event(self, event: Event) -> Event:
        async with self._session_factory() as session, session.begin():
            row = event_orm.Event(
                title=event.title,
                location=event.location,
                start_time=event.start_time,
                end_time=event.end_time,
                capacity=event.capacity,
                tiers=[{"name": t.name, "capacity": t.capacity, "price": str(t.price)} for t in event.tiers],
                custom_fields=[
                    {"name": f.name, "required": f.required, "label": f.label} for f in event.custom_fields
                ],
                invited_emails=list(event.invited_emails),
                visibility=event.visibility.value,
                status=event.status.value,
                organizer_id=event.organizer_id,
            )
            session.add(row)
            await session.flush()
            return _to_event(row)

    async def get_event(self, event_id: int) -> Optional[Event]:
        async with self._session_factory() as session:
            row = await session.get(event_orm.Event, event_id)
            return _to_event(row) if row else None

    async def list_events(self) -> list[Event]:
        async with self._session_factory() as session:
            result = await session.execute(select(event_orm.Event).order_by(event_orm.Event.start_time.asc()))
            return [_to_event(row) for row in result.scalars().all()]

    async def add_registration(self, registration: Registration) -> Registration:
        row = registration_orm.Registration(
            event_id=registration.event_id,
            user_id=registration.person_id,
            tier=registration.tier,
            status=registration.status.value,
            waitlist_position=registration.waitlist_position,
            answers=dict(registration.answers),
            seat_token=registration.seat_token,
            ticket_code=registration.ticket_code,
            created_at=registration.created_at,
            updated_at=registration.updated_at,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
                await session.flush()
                return _to_registration(row)
        except IntegrityError as exc:
            logger.info(
                "registration_insert_rejected",
                event_id=registration.event_id,
                person_id=registration.person_id,
                error=str(exc.orig),
            )
            raise DuplicateRegistrationError(registration.event_id, registration.person_id) from exc

    async def save_registration(self, registration: Registration) -> Registration:
        async with self._session_factory() as session, session.begin():
            row = await session.get(registration_orm.Registration, registration.id)
            row.tier = registration.tier
            row.status = registration.status.value
            row.waitlist_position = registration.waitlist_position
            row.answers = dict(registration.answers)
            row.seat_token = registration.seat_token
            row.ticket_code = registration.ticket_code
            row.updated_at = utcnow()
            await session.flush()
            return _to_registration(row)

    async def get_registration(self, registration_id: int) -> Optional[Registration]:
        async with self._session_factory() as session:
            row = await session.get(registration_orm.Registration, registration_id)
            return _to_registration(row) if row else None

    async def find_registration(self, event_id: int, person_id: int) -> Optional[Registration]:
        Reg = registration_orm.Registration
        async with self._session_factory() as session:
            result = await session.execute(
                select(Reg)
                .where(Reg.event_id == event_id, Reg.user_id == person_id)
                # active row first, then newest cancelled
                .order_by((Reg.status == RegistrationStatus.CANCELLED.value).asc(), Reg.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _to_registration(row) if row else None

    async def list_event_registrations(self, event_id: int) -> list[Registration]:
        Reg = registration_orm.Registration
        async with self._session_factory() as session:
            result = await session.execute(
                select(Reg).where(Reg.event_id == event_id).order_by(Reg.created_at.asc(), Reg.id.asc())
            )
            return [_to_registration(row) for row in result.scalars().all()]

    async def list_person_registrations(self, person_id: int) -> list[Registration]:
        Reg = registration_orm.Registration
        async with self._session_factory() as session:
            result = await session.execute(
                select(Reg).where(Reg.user_id == person_id).order_by(Reg.created_at.asc(), Reg.id.asc())
            )
            return [_to_registration(row) for row in result.scalars().all()]

    async def list_waitlist(self, event_id: int, tier: Optional[str] = None) -> list[Registration]:
        Reg = registration_orm.Registration
        query = select(Reg).where(
            Reg.event_id == event_id,
            Reg.status == RegistrationStatus.WAITLISTED.value,
        )
        if tier is not None:
            query = query.where(Reg.tier == tier)
        async with self._session_factory() as session:
            result = await session.execute(query.order_by(Reg.waitlist_position.asc()))
            return [_to_registration(row) for row in result.scalars().all()]

    async def shift_waitlist(self, event_id: int, after_position: int) -> int:
        Reg = registration_orm.Registration
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(Reg)
                .where(
                    Reg.event_id == event_id,
                    Reg.status == RegistrationStatus.WAITLISTED.value,
                    Reg.waitlist_position > after_position,
                )
                .values(waitlist_position=Reg.waitlist_position - 1, updated_at=utcnow())
            )
            return result.rowcount

    async def list_seat_holders(self, event_id: int, tier: str) -> list[Registration]:
        Reg = registration_orm.Registration
        async with self._session_factory() as session:
            result = await session.execute(
                select(Reg).where(
                    Reg.event_id == event_id,
                    Reg.tier == tier,
                    Reg.status.in_([RegistrationStatus.REGISTERED.value, RegistrationStatus.ATTENDED.value]),
                )
            )
            return [_to_registration(row) for row in result.scalars().all()]

    async def check_in(self, record: CheckInRecord) -> bool:
        Reg = registration_orm.Registration
        try:
            async with self._session_factory() as session, session.begin():
                session.add(registration_orm.CheckInRecord(
                    registration_id=record.registration_id,
                    checked_in_at=record.checked_in_at,
                    method=record.method.value,
                    idempotency_key=record.idempotency_key,
                ))
                await session.flush()
                result = await session.execute(
                    update(Reg)
                    .where(Reg.id == record.registration_id, Reg.status == RegistrationStatus.REGISTERED.value)
                    .values(status=RegistrationStatus.ATTENDED.value, updated_at=record.checked_in_at)
                )
                if result.rowcount != 1:
                    raise CheckInIntegrityError(
                        "Check-in attempted on a registration that is not REGISTERED",
                        registration_id=record.registration_id,
                    )
        except IntegrityError:
            # unique registration_id: someone else checked this registration in first
            return False
        return True

    async def get_check_in(self, registration_id: int) -> Optional[CheckInRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(registration_orm.CheckInRecord).where(
                    registration_orm.CheckInRecord.registration_id == registration_id
                )
            )
            row = result.scalar_one_or_none()
            return _to_check_in(row) if row else None

    @asynccontextmanager
    async def guard(self, scope: str, key: int) -> AsyncIterator[None]:
        # local lock first: one pooled connection per key waits on the advisory lock
        async with self._local_guards.hold((scope, key)):
            engine: AsyncEngine = self._session_factory.kw["bind"]
            if engine.dialect.name != "postgresql":
                yield
                return
            params = {"scope": _GUARD_SCOPES[scope], "key": key}
            # session-level lock: bound to this connection until unlocked
            async with engine.connect() as conn:
                await conn.execute(text("SELECT pg_advisory_lock(:scope, :key)"), params)
                await conn.commit()
                try:
                    yield
                finally:
                    await conn.execute(text("SELECT pg_advisory_unlock(:scope, :key)"), params)
                    await conn.commit()
