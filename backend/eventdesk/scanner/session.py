"""
Check-in scan session.

STATE MACHINE
=============

  IDLE -> ACQUIRING -> SCANNING -> DECODING -> VERIFIED | REJECTED
                 \                                  |
                  -> ERROR (terminal)         reset -> ACQUIRING -> SCANNING

Resource rules:
  - At most one capture device is held. reset() closes the current device
    before a new one is opened, so two are never held at once.
  - Acquisition failure (permission denied, no device, timeout) goes straight
    to ERROR and releases whatever was partially opened.
  - Every exit path (result, error, reset, close) releases the device.

Decode rules:
  - Decodes are only accepted while SCANNING.
  - The same raw payload is not re-submitted while its verification is in
    flight; the guard clears when a result returns or on reset.
  - Payloads that are neither a structured ticket, `event:<id>`, nor a legacy
    event URL are REJECTED as INVALID_FORMAT without contacting the verifier.
  - A gateway that raises yields REJECTED with no outcome. A cancelled decode
    releases the device and returns to IDLE.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from eventdesk.core.config import get_settings
from eventdesk.core.logging import get_logger
from eventdesk.core.metrics import record_scan_state
from eventdesk.domain.errors import CaptureError, CaptureTimeout, CheckInOutcome
from eventdesk.scanner.devices import CaptureDevice
from eventdesk.scanner.gateway import CheckInGateway
from eventdesk.services.ticket_service import parse_ticket

logger = get_logger(__name__)


class ScanState(str, Enum):
    IDLE = "IDLE"
    ACQUIRING = "ACQUIRING"
    SCANNING = "SCANNING"
    DECODING = "DECODING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ScanResult:
    payload: str
    ok: bool
    message: str
    outcome: Optional[CheckInOutcome] = None


class ScanSession:
    def __init__(
        self,
        device_factory: Callable[[], CaptureDevice],
        gateway: CheckInGateway,
        claimed_event_id: Optional[int] = None,
        acquire_timeout: Optional[float] = None,
        result_display_seconds: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self._device_factory = device_factory
        self._gateway = gateway
        self.claimed_event_id = claimed_event_id
        self.acquire_timeout = acquire_timeout if acquire_timeout is not None else settings.SCAN_ACQUIRE_TIMEOUT_SECONDS
        self.result_display_seconds = (
            result_display_seconds if result_display_seconds is not None else settings.SCAN_RESULT_DISPLAY_SECONDS
        )

        self._state = ScanState.IDLE
        self._device: Optional[CaptureDevice] = None
        self._pending_payload: Optional[str] = None
        self.last_result: Optional[ScanResult] = None
        self.error: Optional[CaptureError] = None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def device(self) -> Optional[CaptureDevice]:
        return self._device

    def _transition(self, state: ScanState) -> None:
        logger.debug("scan_state_changed", previous=self._state.value, state=state.value)
        self._state = state
        record_scan_state(state.value.lower())

    async def start(self) -> ScanState:
        """IDLE -> ACQUIRING -> SCANNING, or ERROR when the device cannot be opened."""
        if self._state != ScanState.IDLE:
            raise RuntimeError(f"Cannot start a scan session in state {self._state.value}")
        await self._acquire()
        return self._state

    async def _acquire(self) -> None:
        await self._release()
        self._transition(ScanState.ACQUIRING)

        device = self._device_factory()
        self._device = device
        try:
            await asyncio.wait_for(device.open(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError:
            await self._fail(CaptureTimeout())
            return
        except CaptureError as e:
            await self._fail(e)
            return
        except BaseException:
            await self._release()
            raise

        self.error = None
        self._transition(ScanState.SCANNING)

    async def _fail(self, error: CaptureError) -> None:
        self.error = error
        logger.warning("scan_capture_failed", code=error.code.value, error=error.message)
        await self._release()
        self._transition(ScanState.ERROR)

    async def _release(self) -> None:
        device, self._device = self._device, None
        if device is None:
            return
        try:
            await device.close()
        except Exception:
            logger.exception("scan_device_close_failed")

    async def on_decoded(self, raw: str) -> Optional[ScanResult]:
        """
        Feed one decoded payload. Returns the result, or None when the decode
        was ignored (not SCANNING, or a duplicate of the in-flight payload).
        """
        if self._state != ScanState.SCANNING or not raw:
            return None
        if raw == self._pending_payload:
            logger.debug("scan_duplicate_suppressed")
            return None

        self._pending_payload = raw
        self._transition(ScanState.DECODING)

        if parse_ticket(raw) is None:
            result = ScanResult(
                payload=raw,
                ok=False,
                message="Invalid QR code format",
                outcome=CheckInOutcome.INVALID_FORMAT,
            )
        else:
            try:
                response = await self._gateway.submit(raw, self.claimed_event_id)
            except asyncio.CancelledError:
                self._pending_payload = None
                await self._release()
                self._transition(ScanState.IDLE)
                raise
            except Exception:
                logger.exception("scan_verification_failed", event_id=self.claimed_event_id)
                response = None
            if response is None:
                result = ScanResult(payload=raw, ok=False, message="Check-in failed. Please try again.")
            else:
                result = ScanResult(payload=raw, ok=response.ok, message=response.message, outcome=response.outcome)

        self._pending_payload = None
        self.last_result = result
        self._transition(ScanState.VERIFIED if result.ok else ScanState.REJECTED)
        logger.info(
            "scan_result",
            ok=result.ok,
            outcome=result.outcome.value if result.outcome else None,
            event_id=self.claimed_event_id,
        )
        return result

    async def scan_once(self) -> Optional[ScanResult]:
        """Read frames from the device until one yields a result."""
        while self._state == ScanState.SCANNING and self._device is not None:
            payload = await self._device.read()
            if payload is None:
                continue
            result = await self.on_decoded(payload)
            if result is not None:
                return result
        return None

    async def reset(self) -> ScanState:
        """Release the device, clear the last result and re-acquire.

        Not while a decode is in flight. ERROR is terminal: close() and start() again.
        """
        if self._state not in (ScanState.SCANNING, ScanState.VERIFIED, ScanState.REJECTED):
            raise RuntimeError(f"Cannot reset a scan session in state {self._state.value}")
        self._pending_payload = None
        self.last_result = None
        await self._acquire()
        return self._state

    async def run(
        self,
        on_result: Optional[Callable[[ScanResult], Awaitable[None]]] = None,
        max_scans: Optional[int] = None,
    ) -> int:
        """
        Scan continuously: show each result for result_display_seconds, then
        reset. Stops on ERROR or after max_scans results. Returns scans done.
        """
        if self._state == ScanState.IDLE:
            await self.start()

        scans = 0
        while self._state == ScanState.SCANNING:
            result = await self.scan_once()
            if result is None:
                break
            scans += 1
            if on_result is not None:
                await on_result(result)
            if max_scans is not None and scans >= max_scans:
                break
            await asyncio.sleep(self.result_display_seconds)
            await self.reset()
        return scans

    async def close(self) -> None:
        await self._release()
        self._pending_payload = None
        if self._state != ScanState.IDLE:
            self._transition(ScanState.IDLE)

    async def __aenter__(self) -> "ScanSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
