"""Ticket identifiers: issuing, parsing and QR rendering.

Accepted forms
    Structured (issued):  ticket:<event_id>:<registration_id>:<signature>
    Short (hand-typed):   event:<event_id>
    Legacy URL path:      https://host/.../events/<event_id>

The structured form is signed with HMAC-SHA256 over the event and
registration ids, keyed by a domain-separated derivative of SECRET_KEY and
truncated to a short hex string so it stays typeable. The short and URL forms
name only the event; the person must come from the caller (scanner token or
kiosk email).
"""

import base64
import hashlib
import hmac
import re
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import qrcode

from eventdesk.domain.models import Registration

STRUCTURED_PREFIX = "ticket"
SHORT_PREFIX = "event"

_KEY_DOMAIN = b"eventdesk:ticket:v1"

_STRUCTURED_RE = re.compile(r"^ticket:(\d+):(\d+):([0-9a-f]+)$", re.IGNORECASE)
_SHORT_RE = re.compile(r"^event:(\d+)$", re.IGNORECASE)
_LEGACY_URL_RE = re.compile(r"/events/(\d+)/?(?:[?#].*)?$", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedTicket:
    event_id: int
    registration_id: Optional[int] = None
    signature: Optional[str] = None
    raw: str = ""

    @property
    def is_structured(self) -> bool:
        return self.registration_id is not None


def parse_ticket(raw: str) -> Optional[ParsedTicket]:
    """Decode a scanned or typed payload. Returns None for anything unrecognised.

    Pure function: no store or ledger access.
    """
    if not raw:
        return None
    text = raw.strip()

    match = _STRUCTURED_RE.match(text)
    if match:
        return ParsedTicket(
            event_id=int(match.group(1)),
            registration_id=int(match.group(2)),
            signature=match.group(3).lower(),
            raw=text,
        )

    match = _SHORT_RE.match(text)
    if match:
        return ParsedTicket(event_id=int(match.group(1)), raw=text)

    if "://" in text or text.startswith("/"):
        match = _LEGACY_URL_RE.search(text)
        if match:
            return ParsedTicket(event_id=int(match.group(1)), raw=text)

    return None


def short_code(event_id: int) -> str:
    return f"{SHORT_PREFIX}:{event_id}"


class TicketIssuer:
    """Issues and checks structured ticket identifiers."""

    def __init__(self, secret_key: str, signature_length: int = 16) -> None:
        self._key = hmac.new(secret_key.encode("utf-8"), _KEY_DOMAIN, hashlib.sha256).digest()
        self._signature_length = signature_length

    def _sign(self, event_id: int, registration_id: int) -> str:
        message = f"{event_id}:{registration_id}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()[: self._signature_length]

    def issue(self, registration: Registration) -> str:
        """Stable identifier for a confirmed registration: same input, same string."""
        signature = self._sign(registration.event_id, registration.id)
        return f"{STRUCTURED_PREFIX}:{registration.event_id}:{registration.id}:{signature}"

    def is_authentic(self, parsed: ParsedTicket) -> bool:
        if not parsed.is_structured or not parsed.signature:
            return False
        expected = self._sign(parsed.event_id, parsed.registration_id)
        return hmac.compare_digest(expected, parsed.signature)

    @staticmethod
    def idempotency_key(parsed: ParsedTicket, person_id: Optional[int] = None) -> str:
        """Key for the check-in record, derived from the presented identifier."""
        if parsed.is_structured:
            basis = f"{STRUCTURED_PREFIX}:{parsed.event_id}:{parsed.registration_id}"
        else:
            basis = f"{SHORT_PREFIX}:{parsed.event_id}:person:{person_id}"
        return hashlib.sha256(basis.encode("utf-8")).hexdigest()


def render_qr_png(payload: str) -> bytes:
    """Render a ticket payload as a PNG QR code."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = BytesIO()
    img.save(buffered, "PNG")
    return buffered.getvalue()


def render_qr_base64(payload: str) -> str:
    return base64.b64encode(render_qr_png(payload)).decode("utf-8")
