"""
JWT access tokens.
Identity issuance (login, signup) lives elsewhere; this module only signs and
reads the bearer tokens the API accepts.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from eventdesk.core.config import get_settings


@dataclass(frozen=True)
class Principal:
    person_id: int
    role: str = "member"

    @property
    def is_staff(self) -> bool:
        return self.role in get_settings().STAFF_ROLES


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Principal]:
    """Returns None for expired, forged or malformed tokens."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        return None

    subject = payload.get("sub")
    if subject is None:
        return None
    try:
        person_id = int(subject)
    except (TypeError, ValueError):
        return None
    return Principal(person_id=person_id, role=payload.get("role", "member"))
