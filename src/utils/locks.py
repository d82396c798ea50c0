"""Per-key asyncio locks."""

import asyncio
from contextlib import asynccontextmanager


class KeyedLock:
    """
    One ``asyncio.Lock`` per key, created on first use.

    A key's lock is dropped as soon as no task holds or waits on it, so
    ids that are seen once (including unknown ones) do not accumulate.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, key: str) -> bool:
        return key in self._locks
