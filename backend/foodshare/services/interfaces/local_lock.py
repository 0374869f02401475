"""
In-process key lock - one asyncio.Lock per active key.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from foodshare.core.errors import Conflict
from foodshare.core.metrics import lock_timeouts, lock_wait
from foodshare.services.interfaces.key_lock import KeyLockStrategy


class LocalKeyLock(KeyLockStrategy):
    """
    asyncio locks keyed by string, created on demand and dropped once the
    last holder or waiter leaves, so the table only holds contended keys.

    Use when:
    - a single worker process serves the API
    - tests and local development

    Several worker processes need RedisKeyLock; the database constraints
    still prevent overselling either way.
    """

    name = "local"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1

        started = time.perf_counter()
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                lock_timeouts.labels(strategy=self.name).inc()
                raise Conflict("Resource is busy, please retry")
            lock_wait.labels(strategy=self.name).observe(time.perf_counter() - started)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def active_keys(self) -> int:
        return len(self._locks)
