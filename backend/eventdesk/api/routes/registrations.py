"""
Registration endpoints: join, cancel, list and tickets.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from eventdesk.api.deps import get_current_principal, get_services
from eventdesk.core.logging import get_logger
from eventdesk.core.security import Principal
from eventdesk.domain.errors import CancelOutcome, JoinOutcome
from eventdesk.domain.models import Registration, RegistrationStatus
from eventdesk.schemas.registration import (
    CancelResponse,
    MyRegistrationResponse,
    RegistrationCreate,
    RegistrationResponse,
    TicketResponse,
)
from eventdesk.services.container import Services
from eventdesk.services.ticket_service import render_qr_base64, render_qr_png, short_code

logger = get_logger(__name__)
router = APIRouter(prefix="/registrations", tags=["Registrations"])

JOIN_STATUS_CODES = {
    JoinOutcome.ALREADY_REGISTERED: status.HTTP_409_CONFLICT,
    JoinOutcome.EVENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    JoinOutcome.EVENT_NOT_OPEN: status.HTTP_400_BAD_REQUEST,
    JoinOutcome.NOT_INVITED: status.HTTP_403_FORBIDDEN,
    JoinOutcome.UNKNOWN_TIER: status.HTTP_400_BAD_REQUEST,
    JoinOutcome.MISSING_REQUIRED_FIELD: status.HTTP_400_BAD_REQUEST,
    JoinOutcome.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
}


@router.post("", response_model=RegistrationResponse)
async def join_event(
    event_id: int = Query(...),
    payload: Optional[RegistrationCreate] = None,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """
    Join an event.

    200 with status REGISTERED (seat confirmed, ticket issued) or WAITLISTED
    (event full, queued). Both are successful joins; clients must not assume a
    seat until the response says REGISTERED.
    """
    payload = payload or RegistrationCreate()
    result = await services.admission.join(
        event_id,
        principal.person_id,
        tier=payload.ticket_type,
        answers=payload.custom_answers,
    )
    if not result.outcome.admitted:
        raise HTTPException(status_code=JOIN_STATUS_CODES[result.outcome], detail=result.message)

    registration = result.registration
    return RegistrationResponse(
        message=result.message,
        status=registration.status,
        registration_id=registration.id,
        event_id=registration.event_id,
        ticket_type=registration.tier,
        waitlist_position=registration.waitlist_position,
    )


@router.delete("", response_model=CancelResponse)
async def cancel_registration(
    event_id: int = Query(...),
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """Cancel the caller's registration. A freed seat goes to the head of the waitlist."""
    result = await services.admission.cancel_for_person(event_id, principal.person_id)
    if result.outcome == CancelOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)

    return CancelResponse(
        message=result.message,
        registration_id=result.registration.id,
        status=result.registration.status,
    )


@router.get("/me", response_model=list[MyRegistrationResponse])
async def my_registrations(
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    rows = await services.admission.registrations_for_person(principal.person_id)
    return [
        MyRegistrationResponse(
            event_id=event.id,
            title=event.title,
            start_time=event.start_time,
            my_status=registration.status,
            ticket_type=registration.tier,
            waitlist_position=registration.waitlist_position,
        )
        for registration, event in rows
    ]


async def _ticketed_registration(services: Services, event_id: int, person_id: int) -> Registration:
    registration = await services.store.find_registration(event_id, person_id)
    if registration is None or not registration.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active registration found for this event")
    if not registration.status.holds_seat or not registration.ticket_code:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You are on the waitlist. A ticket is issued once you are promoted.",
        )
    return registration


@router.get("/ticket", response_model=TicketResponse)
async def get_ticket(
    event_id: int = Query(...),
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    registration = await _ticketed_registration(services, event_id, principal.person_id)
    return TicketResponse(
        event_id=registration.event_id,
        registration_id=registration.id,
        ticket_code=registration.ticket_code,
        short_code=short_code(registration.event_id),
        qr_code=render_qr_base64(registration.ticket_code),
    )


@router.get("/ticket/qr", response_class=Response)
async def get_ticket_qr(
    event_id: int = Query(...),
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """The caller's ticket as a PNG QR code."""
    registration = await _ticketed_registration(services, event_id, principal.person_id)
    if registration.status == RegistrationStatus.ATTENDED:
        logger.info("ticket_requested_after_checkin", registration_id=registration.id)
    return Response(content=render_qr_png(registration.ticket_code), media_type="image/png")
