"""
Per-key serialization strategy interface.
Allows swapping between single-process and distributed mutual exclusion.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager


class KeyLockStrategy(ABC):
    """
    Interface for per-key mutual exclusion.

    Claims on one resource, and workflow transitions on one (group, user)
    pair, must not interleave. Operations on different keys run in parallel.

    Implementations:
    - LocalKeyLock: asyncio locks, correct within one process
    - RedisKeyLock: Redis lease locks shared by every worker process
    """

    name: str = "abstract"

    @abstractmethod
    def hold(self, key: str) -> AsyncContextManager[None]:
        """
        Hold the lock for `key` for the duration of the `async with` block.

        Raises:
            Conflict: the lock could not be acquired within the configured
                timeout; the caller's operation has not run
        """
        pass


def resource_key(resource_id: str) -> str:
    return f"resource:{resource_id}"


def membership_key(group_id: str, user_id: str) -> str:
    return f"membership:{group_id}:{user_id}"


def group_key(group_id: str) -> str:
    return f"group:{group_id}"
