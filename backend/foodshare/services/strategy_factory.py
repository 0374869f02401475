"""
Key lock strategy factory.
Configures which per-key serialization strategy the engines use.
"""

from typing import Optional

from foodshare.core.config import get_settings
from foodshare.services.interfaces.key_lock import KeyLockStrategy
from foodshare.services.interfaces.local_lock import LocalKeyLock
from foodshare.services.lock_service import RedisKeyLock


def get_key_lock_strategy() -> KeyLockStrategy:
    """
    Build the configured strategy.

    - "local" (default): LocalKeyLock, single process
    - "redis": RedisKeyLock, shared by all workers

    Selected with the LOCK_STRATEGY env var.
    """
    settings = get_settings()

    if settings.LOCK_STRATEGY == "redis":
        return RedisKeyLock()
    return LocalKeyLock(timeout=settings.LOCK_TIMEOUT_SECONDS)


# Singleton instance
_strategy: Optional[KeyLockStrategy] = None


def get_key_lock() -> KeyLockStrategy:
    """Get key lock strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_key_lock_strategy()
    return _strategy


def set_key_lock(strategy: Optional[KeyLockStrategy]) -> None:
    """Replace (or reset with None) the singleton, e.g. from tests."""
    global _strategy
    _strategy = strategy
