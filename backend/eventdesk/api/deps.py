"""
FastAPI dependencies: service container and authenticated principal.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eventdesk.core.security import Principal, decode_access_token
from eventdesk.services.container import Services

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Principal:
    """Resolve the bearer token to a known person. 401 otherwise."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    principal = decode_access_token(credentials.credentials)
    if principal is None:
        raise unauthorized
    person = await services.store.get_person(principal.person_id)
    if person is None:
        raise unauthorized
    # the stored role wins over the claim
    return Principal(person_id=person.id, role=person.role)


async def require_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Organizer access required")
    return principal
