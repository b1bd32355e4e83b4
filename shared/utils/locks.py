"""
shared/utils/locks.py
Process-wide keyed asyncio locks.

Used to serialize read-modify-write sequences on one entity (a service's
rating stats, a user's saved set) between concurrent requests handled by the
same worker. Cross-process safety comes from row locks (SELECT ... FOR UPDATE)
taken inside the locked section.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLocks:
    """One asyncio.Lock per key, dropped again once nobody holds or awaits it."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


# Registries shared by every request in this process
service_locks = KeyedLocks()
user_locks = KeyedLocks()
