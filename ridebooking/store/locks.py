"""Per-key asyncio locks.

``hold("phone:+92...", "phone:+92...")`` gives the caller exclusive use of
every named key for the duration of the block. Keys are always taken in
sorted order, so two holders sharing any subset of keys cannot deadlock.
A key's lock is dropped once nobody holds or waits for it.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: Counter[str] = Counter()

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        # Register before the first await so a releasing holder sees us
        for key in ordered:
            self._users[key] += 1
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()

        acquired: list[asyncio.Lock] = []
        try:
            for key in ordered:
                lock = self._locks[key]
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._users[key] -= 1
                if self._users[key] <= 0:
                    del self._users[key]
                    del self._locks[key]
