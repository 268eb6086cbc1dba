"""
Event endpoints: creation, lookup, attendee export and check-in.
"""

import csv
import io

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, StreamingResponse

from eventdesk.api.deps import get_current_principal, get_services, require_staff
from eventdesk.core.logging import get_logger
from eventdesk.core.security import Principal
from eventdesk.domain.errors import CheckInOutcome
from eventdesk.domain.models import Event
from eventdesk.domain.outcomes import VerifyResult
from eventdesk.schemas.checkin import CheckInRequest, CheckInResponse, SelfCheckInRequest
from eventdesk.schemas.event import (
    AttendeeResponse,
    CustomFieldResponse,
    EventCreate,
    EventResponse,
    TierAvailabilityResponse,
)
from eventdesk.services.container import Services
from eventdesk.services.ticket_service import short_code

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])

CHECKIN_STATUS_CODES = {
    CheckInOutcome.SUCCESS: status.HTTP_200_OK,
    CheckInOutcome.INVALID_FORMAT: status.HTTP_400_BAD_REQUEST,
    CheckInOutcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CheckInOutcome.ALREADY_CHECKED_IN: status.HTTP_409_CONFLICT,
    CheckInOutcome.NOT_ELIGIBLE: status.HTTP_403_FORBIDDEN,
}


async def _event_response(services: Services, event: Event) -> EventResponse:
    prices = {tier.name: tier.price for tier in event.effective_tiers()}
    return EventResponse(
        id=event.id,
        title=event.title,
        start_time=event.start_time,
        end_time=event.end_time,
        location=event.location,
        capacity=event.capacity,
        visibility=event.visibility,
        status=event.effective_status(),
        organizer_id=event.organizer_id,
        ticket_types=[
            TierAvailabilityResponse(
                name=tier.name,
                capacity=tier.capacity,
                price=prices[tier.name],
                taken=tier.taken,
                remaining=tier.remaining,
            )
            for tier in await services.events.availability(event)
        ],
        custom_fields=[
            CustomFieldResponse(name=f.name, required=f.required, label=f.label)
            for f in event.custom_fields
        ],
    )


def _checkin_response(result: VerifyResult) -> JSONResponse:
    body = CheckInResponse(
        message=result.message,
        outcome=result.outcome,
        event_id=result.event.id if result.event else None,
        event_title=result.event.title if result.event else None,
        registration_id=result.registration.id if result.registration else None,
        attendee_email=result.person.email if result.person else None,
        attendee_name=result.person.display_name if result.person else None,
        status=result.registration.status if result.registration else None,
    )
    return JSONResponse(status_code=CHECKIN_STATUS_CODES[result.outcome], content=body.model_dump(mode="json"))


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    principal: Principal = Depends(require_staff),
    services: Services = Depends(get_services),
):
    """Create an event and open its ledger entries. Organizers only."""
    event = await services.events.create_event(event_data.to_domain(principal.person_id))
    return await _event_response(services, event)


@router.get("", response_model=list[EventResponse])
async def list_events_endpoint(
    upcoming_only: bool = Query(True),
    services: Services = Depends(get_services),
):
    events = await services.events.list_events(upcoming_only=upcoming_only)
    return [await _event_response(services, event) for event in events]


@router.get("/attendees", response_model=list[AttendeeResponse])
async def list_attendees(
    event_id: int = Query(...),
    principal: Principal = Depends(require_staff),
    services: Services = Depends(get_services),
):
    rows = await services.events.list_attendees(event_id)
    return [
        AttendeeResponse(
            email=row.email,
            name=row.display_name,
            status=row.status,
            ticket_type=row.tier,
            waitlist_position=row.waitlist_position,
        )
        for row in rows
    ]


@router.get("/export")
async def export_attendees(
    event_id: int = Query(...),
    principal: Principal = Depends(require_staff),
    services: Services = Depends(get_services),
):
    """Attendee list as a CSV attachment."""
    rows = await services.events.list_attendees(event_id)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["email", "name", "status", "ticket_type", "waitlist_position"])
    for row in rows:
        writer.writerow([row.email, row.display_name, row.status.value, row.tier, row.waitlist_position or ""])
    output.seek(0)

    logger.info("attendees_exported", event_id=event_id, rows=len(rows))
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=attendees.csv"},
    )


@router.post("/checkin", response_model=CheckInResponse)
async def check_in(
    payload: CheckInRequest,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """
    Verify a scanned or typed ticket.

    The code may be the structured ticket, `event:<id>` or a legacy event URL.
    Event-only forms check in the authenticated caller.
    """
    code = payload.code or short_code(payload.event_id)
    result = await services.verifier.verify(
        code,
        claimed_event_id=payload.event_id,
        person_id=principal.person_id,
    )
    return _checkin_response(result)


@router.post("/checkin/self", response_model=CheckInResponse)
async def self_check_in(
    payload: SelfCheckInRequest,
    services: Services = Depends(get_services),
):
    """Kiosk check-in identified by email. No authentication."""
    result = await services.verifier.self_check_in(
        payload.email.strip(),
        presented=payload.code,
        event_id=payload.event_id,
    )
    return _checkin_response(result)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    services: Services = Depends(get_services),
):
    """Single event with live per-tier seat counts from the ledger."""
    event = await services.events.get_event(event_id)
    return await _event_response(services, event)
