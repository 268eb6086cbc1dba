"""
Check-in gateways: how a scan session reaches the verifier.

LocalCheckInGateway calls the verifier in-process (kiosk running next to the
API). HttpCheckInGateway posts to POST /api/events/checkin. The endpoint's
canonical body is JSON {message, outcome, ...}; older deployments answered
with plain text, so both are accepted and success is read from the HTTP
status, never from the body shape.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from eventdesk.core.logging import get_logger
from eventdesk.domain.errors import CheckInOutcome
from eventdesk.domain.models import CheckInMethod

logger = get_logger(__name__)

OUTCOMES_BY_STATUS = {
    400: CheckInOutcome.INVALID_FORMAT,
    403: CheckInOutcome.NOT_ELIGIBLE,
    404: CheckInOutcome.NOT_FOUND,
    409: CheckInOutcome.ALREADY_CHECKED_IN,
}


@dataclass(frozen=True)
class GatewayResult:
    ok: bool
    message: str
    outcome: Optional[CheckInOutcome] = None  # None: transport or server failure


class CheckInGateway(ABC):
    @abstractmethod
    async def submit(self, code: str, claimed_event_id: Optional[int] = None) -> GatewayResult:
        pass

    async def aclose(self) -> None:
        pass


class LocalCheckInGateway(CheckInGateway):
    def __init__(self, verifier, person_id: Optional[int] = None, method: CheckInMethod = CheckInMethod.SCANNED):
        self._verifier = verifier
        self._person_id = person_id
        self._method = method

    async def submit(self, code: str, claimed_event_id: Optional[int] = None) -> GatewayResult:
        result = await self._verifier.verify(
            code,
            claimed_event_id=claimed_event_id,
            person_id=self._person_id,
            method=self._method,
        )
        return GatewayResult(ok=result.ok, message=result.message, outcome=result.outcome)


class HttpCheckInGateway(CheckInGateway):
    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def submit(self, code: str, claimed_event_id: Optional[int] = None) -> GatewayResult:
        payload: dict = {"code": code}
        if claimed_event_id is not None:
            payload["event_id"] = claimed_event_id

        try:
            response = await self._client.post("/api/events/checkin", json=payload)
        except httpx.HTTPError as e:
            logger.warning("checkin_gateway_unreachable", error=str(e))
            return GatewayResult(ok=False, message="Check-in service unreachable")

        message, outcome = parse_checkin_body(response)
        if response.is_success:
            return GatewayResult(ok=True, message=message or "Checked in", outcome=CheckInOutcome.SUCCESS)

        outcome = outcome or OUTCOMES_BY_STATUS.get(response.status_code)
        if outcome is None:
            logger.warning("checkin_gateway_error", status_code=response.status_code, body=message)
        return GatewayResult(ok=False, message=message or f"Check-in failed ({response.status_code})", outcome=outcome)

    async def aclose(self) -> None:
        await self._client.aclose()


def parse_checkin_body(response: httpx.Response) -> tuple[str, Optional[CheckInOutcome]]:
    """Message and outcome from a JSON body, or the raw text of a plain body."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip(), None

    if isinstance(body, dict):
        message = str(body.get("message") or body.get("detail") or "")
        try:
            outcome = CheckInOutcome(body["outcome"]) if body.get("outcome") else None
        except ValueError:
            outcome = None
        return message, outcome
    if isinstance(body, str):
        return body, None
    return response.text.strip(), None
