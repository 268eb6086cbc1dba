"""
Per-key asyncio locks.

Used to serialize work on a single event or a single registration without
taking a process-wide lock. Locks are held weakly, so keys nobody is waiting
on are garbage collected.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self.get(key)
        async with lock:
            yield
