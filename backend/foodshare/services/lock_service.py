"""
Distributed key lock for multi-process deployments.
Implements KeyLockStrategy using Redis lease locks.

Circuit Breaker Pattern:
  On Redis failure, the lock "fails open" (the operation runs unlocked).
  This prevents Redis outages from blocking every claim and approval.
  Database remains authoritative - Redis is advisory only.

  Tradeoff: During a Redis outage, claims fall back to pure optimistic
  locking. This is acceptable because:
  - The version-guarded UPDATE still refuses a stale decrement
  - CHECK (remaining >= 0) and the unique claim constraint still hold
  - Redis failures should be rare and are counted in metrics
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import LockError, RedisError

from foodshare.core.config import get_settings
from foodshare.core.errors import Conflict
from foodshare.core.logging import get_logger
from foodshare.core.metrics import lock_timeouts, lock_wait, redis_connection_errors
from foodshare.infrastructure.redis_client import get_redis
from foodshare.services.interfaces.key_lock import KeyLockStrategy

logger = get_logger(__name__)


class RedisKeyLock(KeyLockStrategy):
    """
    Redis-based per-key lock.

    The lease (LOCK_LEASE_SECONDS) bounds how long a crashed holder can
    block a key; the blocking timeout (LOCK_TIMEOUT_SECONDS) bounds how long
    a caller waits before giving up with Conflict.

    Use when:
    - several API workers or hosts share one database
    - flash demand on a single resource
    """

    name = "redis"

    def __init__(self):
        settings = get_settings()
        self.lease = settings.LOCK_LEASE_SECONDS
        self.timeout = settings.LOCK_TIMEOUT_SECONDS

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = None
        client = await get_redis()
        if client is not None:
            lock = client.lock(f"lock:{key}", timeout=self.lease, blocking_timeout=self.timeout)
            started = time.perf_counter()
            try:
                acquired = await lock.acquire()
            except RedisError as e:
                # Fail open: database guards still apply
                redis_connection_errors.inc()
                logger.warning("key_lock_unavailable", key=key, error=str(e))
                lock = None
            else:
                if not acquired:
                    lock_timeouts.labels(strategy=self.name).inc()
                    raise Conflict("Resource is busy, please retry")
                lock_wait.labels(strategy=self.name).observe(time.perf_counter() - started)

        try:
            yield
        finally:
            if lock is not None:
                try:
                    await lock.release()
                except (LockError, RedisError) as e:
                    # Lease expired or connection dropped; the key frees itself
                    logger.warning("key_lock_release_failed", key=key, error=str(e))
