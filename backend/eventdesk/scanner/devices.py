"""
Capture devices for the scan session.

A device is an exclusively-owned input resource (a camera, a barcode wedge, a
keyboard). The session opens at most one at a time and always closes it.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from eventdesk.domain.errors import CaptureDeviceAbsent


class CaptureDevice(ABC):
    """
    Interface for capture hardware.

    open() may raise CapturePermissionDenied or CaptureDeviceAbsent.
    read() returns the next decoded payload, or None when a frame held no code.
    close() must be safe to call more than once.
    """

    @abstractmethod
    async def open(self) -> None:
        pass

    @abstractmethod
    async def read(self) -> Optional[str]:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class ManualEntryDevice(CaptureDevice):
    """Typed codes pushed by an operator, e.g. from a kiosk text field."""

    def __init__(self, max_pending: int = 16) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_pending)
        self.is_open = False

    async def open(self) -> None:
        self.is_open = True

    def submit(self, text: str) -> None:
        if not self.is_open:
            raise CaptureDeviceAbsent("Manual entry is not active")
        self._queue.put_nowait(text)

    async def read(self) -> Optional[str]:
        text = await self._queue.get()
        return text.strip() or None

    async def close(self) -> None:
        self.is_open = False
        while not self._queue.empty():
            self._queue.get_nowait()
