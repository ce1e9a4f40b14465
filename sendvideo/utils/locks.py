"""Keyed locks: one asyncio.Lock per key, evicted once nobody holds or waits on it."""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable


class KeyedLockRegistry:
    """
    Lock map keyed by an arbitrary hashable (e.g. a sidecar path).

    Usage:
        locks = KeyedLockRegistry()
        async with locks.hold(progress_path):
            ...  # nobody else touches progress_path here
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield lock
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
