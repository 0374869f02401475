"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .key_lock import KeyLockStrategy, group_key, membership_key, resource_key
from .local_lock import LocalKeyLock

__all__ = ['KeyLockStrategy', 'LocalKeyLock', 'group_key', 'membership_key', 'resource_key']
