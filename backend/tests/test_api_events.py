"""
Tests for event endpoints: creation, listing, attendees and check-in.
"""

import csv
import io
from datetime import datetime, timezone, timedelta

import pytest
from httpx import AsyncClient


def event_payload(**overrides) -> dict:
    start = datetime.now(timezone.utc) + timedelta(days=14)
    payload = {
        "title": "PyCon Meetup",
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=3)).isoformat(),
        "location": "Room 101",
        "capacity": 50,
    }
    payload.update(overrides)
    return payload


async def join(client, event_id, headers):
    response = await client.post("/api/registrations", params={"event_id": event_id}, headers=headers)
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, staff_headers, organizer):
    response = await client.post(
        "/api/events",
        json=event_payload(
            ticket_types=[{"name": "Standard", "capacity": 40}, {"name": "VIP", "capacity": 10, "price": "25.00"}],
            custom_fields=[{"name": "company", "required": True}],
        ),
        headers=staff_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "PyCon Meetup"
    assert data["organizer_id"] == organizer.id
    assert data["status"] == "UPCOMING"
    assert [t["name"] for t in data["ticket_types"]] == ["Standard", "VIP"]
    assert data["ticket_types"][1]["remaining"] == 10
    assert data["custom_fields"] == [{"name": "company", "required": True, "label": None}]


@pytest.mark.asyncio
async def test_create_event_without_tiers_exposes_general_admission(client: AsyncClient, staff_headers):
    response = await client.post("/api/events", json=event_payload(capacity=20), headers=staff_headers)

    assert response.status_code == 201
    [tier] = response.json()["ticket_types"]
    assert (tier["name"], tier["capacity"], tier["taken"]) == ("General Admission", 20, 0)


@pytest.mark.asyncio
async def test_members_cannot_create_events(client: AsyncClient, auth_headers):
    response = await client.post("/api/events", json=event_payload(), headers=auth_headers)

    assert response.status_code == 403
    assert response.json() == {"message": "Organizer access required"}


@pytest.mark.asyncio
async def test_create_event_rule_violations(client: AsyncClient, staff_headers):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    in_the_past = await client.post(
        "/api/events",
        json=event_payload(start_time=past.isoformat(), end_time=None),
        headers=staff_headers,
    )
    oversold = await client.post(
        "/api/events",
        json=event_payload(capacity=10, ticket_types=[{"name": "A", "capacity": 6}, {"name": "B", "capacity": 6}]),
        headers=staff_headers,
    )
    duplicate_tiers = await client.post(
        "/api/events",
        json=event_payload(ticket_types=[{"name": "A", "capacity": 1}, {"name": "A", "capacity": 1}]),
        headers=staff_headers,
    )

    assert in_the_past.status_code == 400
    assert in_the_past.json()["message"] == "Event date must be in the future"
    assert oversold.status_code == 400
    assert duplicate_tiers.status_code == 400


@pytest.mark.asyncio
async def test_create_event_schema_errors(client: AsyncClient, staff_headers):
    response = await client.post("/api/events", json=event_payload(capacity=0), headers=staff_headers)

    assert response.status_code == 422
    body = response.json()
    assert body["message"].startswith("capacity")
    assert body["errors"][0]["loc"] == ["body", "capacity"]


@pytest.mark.asyncio
async def test_list_and_get_events(client: AsyncClient, make_event):
    event = await make_event(title="Listed")

    listed = await client.get("/api/events")
    single = await client.get(f"/api/events/{event.id}")
    missing = await client.get("/api/events/999")

    assert [e["title"] for e in listed.json()] == ["Listed"]
    assert single.json()["id"] == event.id
    assert missing.status_code == 404
    assert missing.json() == {"message": "Event not found"}


@pytest.mark.asyncio
async def test_event_shows_live_seat_counts(client: AsyncClient, make_event, auth_headers):
    event = await make_event(capacity=4)
    await join(client, event.id, auth_headers)

    response = await client.get(f"/api/events/{event.id}")

    [tier] = response.json()["ticket_types"]
    assert tier["taken"] == 1
    assert tier["remaining"] == 3


@pytest.mark.asyncio
async def test_attendees_and_export(client: AsyncClient, make_event, make_person, headers, staff_headers):
    event = await make_event(capacity=1)
    first = await make_person(email="ada@example.com", display_name="Ada")
    second = await make_person(email="bob@example.com", display_name="Bob")
    await join(client, event.id, headers(first))
    await join(client, event.id, headers(second))

    attendees = await client.get("/api/events/attendees", params={"event_id": event.id}, headers=staff_headers)
    export = await client.get("/api/events/export", params={"event_id": event.id}, headers=staff_headers)

    assert attendees.status_code == 200
    assert [(a["email"], a["status"], a["waitlist_position"]) for a in attendees.json()] == [
        ("ada@example.com", "REGISTERED", None),
        ("bob@example.com", "WAITLISTED", 1),
    ]

    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "attendees.csv" in export.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(export.text)))
    assert rows[0] == ["email", "name", "status", "ticket_type", "waitlist_position"]
    assert rows[1] == ["ada@example.com", "Ada", "REGISTERED", "General Admission", ""]
    assert rows[2] == ["bob@example.com", "Bob", "WAITLISTED", "General Admission", "1"]


@pytest.mark.asyncio
async def test_attendees_are_staff_only(client: AsyncClient, make_event, auth_headers):
    event = await make_event()

    response = await client.get("/api/events/attendees", params={"event_id": event.id}, headers=auth_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_checkin_status_codes(client: AsyncClient, make_event, auth_headers, services, member):
    event = await make_event()
    await join(client, event.id, auth_headers)
    registration = await services.store.find_registration(event.id, member.id)

    ok = await client.post(
        "/api/events/checkin",
        json={"code": registration.ticket_code, "event_id": event.id},
        headers=auth_headers,
    )
    again = await client.post("/api/events/checkin", json={"code": registration.ticket_code}, headers=auth_headers)
    garbage = await client.post("/api/events/checkin", json={"code": "hello"}, headers=auth_headers)

    assert ok.status_code == 200
    body = ok.json()
    assert body["outcome"] == "SUCCESS"
    assert body["message"] == "Checked in to Test Meetup"
    assert body["event_title"] == "Test Meetup"
    assert body["attendee_email"] == "member@example.com"
    assert body["status"] == "ATTENDED"

    assert again.status_code == 409
    assert again.json()["outcome"] == "ALREADY_CHECKED_IN"
    assert garbage.status_code == 400
    assert garbage.json()["message"] == "Invalid QR code format"


@pytest.mark.asyncio
async def test_checkin_by_event_id_uses_the_caller(client: AsyncClient, make_event, make_person, headers):
    event = await make_event(capacity=1)
    seated, waiting, stranger = await make_person(), await make_person(), await make_person()
    await join(client, event.id, headers(seated))
    await join(client, event.id, headers(waiting))

    ok = await client.post("/api/events/checkin", json={"event_id": event.id}, headers=headers(seated))
    not_eligible = await client.post("/api/events/checkin", json={"event_id": event.id}, headers=headers(waiting))
    not_found = await client.post("/api/events/checkin", json={"event_id": event.id}, headers=headers(stranger))

    assert ok.status_code == 200
    assert not_eligible.status_code == 403
    assert not_eligible.json()["outcome"] == "NOT_ELIGIBLE"
    assert not_found.status_code == 404


@pytest.mark.asyncio
async def test_checkin_request_needs_code_or_event(client: AsyncClient, auth_headers):
    response = await client.post("/api/events/checkin", json={}, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_checkin_requires_authentication(client: AsyncClient):
    response = await client.post("/api/events/checkin", json={"code": "event:1"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_self_checkin(client: AsyncClient, make_event, auth_headers, member):
    event = await make_event()
    await join(client, event.id, auth_headers)

    ok = await client.post("/api/events/checkin/self", json={"email": member.email, "event_id": event.id})
    unknown = await client.post("/api/events/checkin/self", json={"email": "ghost@example.com", "event_id": event.id})

    assert ok.status_code == 200
    assert ok.json()["attendee_name"] == "Max Member"
    assert unknown.status_code == 404
    assert unknown.json()["outcome"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
