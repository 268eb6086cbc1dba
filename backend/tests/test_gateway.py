"""
Tests for the HTTP check-in gateway used by remote scanners.
"""

import json

import httpx
import pytest

from eventdesk.domain.errors import CheckInOutcome
from eventdesk.scanner.gateway import HttpCheckInGateway


def gateway_with(handler) -> HttpCheckInGateway:
    return HttpCheckInGateway(
        "http://checkin.test",
        access_token="scanner-token",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_posts_code_and_claimed_event_with_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"message": "Checked in to Launch", "outcome": "SUCCESS"})

    gateway = gateway_with(handler)
    result = await gateway.submit("event:3", claimed_event_id=3)
    await gateway.aclose()

    assert seen == {
        "path": "/api/events/checkin",
        "auth": "Bearer scanner-token",
        "body": {"code": "event:3", "event_id": 3},
    }
    assert result.ok
    assert result.message == "Checked in to Launch"
    assert result.outcome == CheckInOutcome.SUCCESS


@pytest.mark.asyncio
async def test_plain_text_success_body():
    gateway = gateway_with(lambda request: httpx.Response(200, text="Checked in"))
    result = await gateway.submit("event:3")
    await gateway.aclose()

    assert result.ok
    assert result.message == "Checked in"


@pytest.mark.asyncio
async def test_json_string_body():
    gateway = gateway_with(lambda request: httpx.Response(404, json="No registration found"))
    result = await gateway.submit("event:3")
    await gateway.aclose()

    assert not result.ok
    assert result.message == "No registration found"
    assert result.outcome == CheckInOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_outcome_from_body_wins_over_status():
    gateway = gateway_with(
        lambda request: httpx.Response(409, json={"message": "Already checked in", "outcome": "ALREADY_CHECKED_IN"})
    )
    result = await gateway.submit("ticket:1:1:abc")
    await gateway.aclose()

    assert not result.ok
    assert result.outcome == CheckInOutcome.ALREADY_CHECKED_IN


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,outcome",
    [
        (400, CheckInOutcome.INVALID_FORMAT),
        (403, CheckInOutcome.NOT_ELIGIBLE),
        (404, CheckInOutcome.NOT_FOUND),
        (409, CheckInOutcome.ALREADY_CHECKED_IN),
        (500, None),
    ],
)
async def test_outcome_from_status_when_body_has_none(status_code, outcome):
    gateway = gateway_with(lambda request: httpx.Response(status_code, json={"detail": "nope"}))
    result = await gateway.submit("event:3")
    await gateway.aclose()

    assert not result.ok
    assert result.message == "nope"
    assert result.outcome == outcome


@pytest.mark.asyncio
async def test_empty_error_body_gets_a_message():
    gateway = gateway_with(lambda request: httpx.Response(502))
    result = await gateway.submit("event:3")
    await gateway.aclose()

    assert not result.ok
    assert result.message == "Check-in failed (502)"


@pytest.mark.asyncio
async def test_transport_error_is_a_failed_result():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    gateway = gateway_with(handler)
    result = await gateway.submit("event:3")
    await gateway.aclose()

    assert not result.ok
    assert result.outcome is None
    assert result.message == "Check-in service unreachable"
