"""
Pytest fixtures for services, HTTP client, people, events and authentication.

Services run on the in-memory store and ledger so concurrency tests exercise
the real admission, promotion and verification code without a database.
The SQLAlchemy store has its own fixtures in test_sql_store.py.
"""

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from eventdesk.main import app
from eventdesk.api.deps import get_services
from eventdesk.core.config import Settings
from eventdesk.core.security import create_access_token
from eventdesk.domain.models import CustomField, Event, Person, TicketTier, Visibility
from eventdesk.services.container import Services, build_services
from eventdesk.services.interfaces.memory_ledger import InMemoryCapacityLedger
from eventdesk.stores.memory import InMemoryStore


def future(days: int = 30) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        STORE_BACKEND="memory",
        LEDGER_BACKEND="memory",
        JOIN_RATE_LIMIT=1000,
        SCAN_RESULT_DISPLAY_SECONDS=0.0,
    )


@pytest_asyncio.fixture(scope="function")
async def services(settings: Settings) -> AsyncGenerator[Services, None]:
    """Fresh store, ledger and services per test."""
    svc = build_services(settings, InMemoryStore(), InMemoryCapacityLedger())
    yield svc
    await svc.publisher.drain()


@pytest_asyncio.fixture(scope="function")
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the services dependency with the test container."""
    app.dependency_overrides[get_services] = lambda: services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


PersonFactory = Callable[..., Awaitable[Person]]
EventFactory = Callable[..., Awaitable[Event]]


@pytest_asyncio.fixture
async def make_person(services: Services) -> PersonFactory:
    counter = {"n": 0}

    async def factory(email: str = None, role: str = "member", display_name: str = None) -> Person:
        counter["n"] += 1
        email = email or f"person{counter['n']}@example.com"
        return await services.store.add_person(
            Person(id=None, email=email, display_name=display_name or f"Person {counter['n']}", role=role)
        )

    return factory


@pytest_asyncio.fixture
async def make_event(services: Services, organizer: Person) -> EventFactory:
    async def factory(
        capacity: int = 10,
        tiers: list[TicketTier] = None,
        custom_fields: list[CustomField] = None,
        visibility: Visibility = Visibility.PUBLIC,
        invited_emails: list[str] = None,
        title: str = "Test Meetup",
    ) -> Event:
        start = future()
        return await services.events.create_event(
            Event(
                id=None,
                title=title,
                start_time=start,
                end_time=start + timedelta(hours=2),
                capacity=capacity,
                tiers=tiers or [],
                custom_fields=custom_fields or [],
                visibility=visibility,
                invited_emails=invited_emails or [],
                organizer_id=organizer.id,
                location="Main Hall",
            )
        )

    return factory


@pytest_asyncio.fixture
async def organizer(services: Services) -> Person:
    return await services.store.add_person(
        Person(id=None, email="organizer@example.com", display_name="Olive Organizer", role="organizer")
    )


@pytest_asyncio.fixture
async def member(make_person: PersonFactory) -> Person:
    return await make_person(email="member@example.com", display_name="Max Member")


def headers_for(person: Person) -> dict:
    """Authorization headers with a Bearer token for person."""
    token = create_access_token(data={"sub": str(person.id), "role": person.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(member: Person) -> dict:
    return headers_for(member)


@pytest.fixture
def staff_headers(organizer: Person) -> dict:
    return headers_for(organizer)


@pytest.fixture
def headers() -> Callable[[Person], dict]:
    return headers_for
