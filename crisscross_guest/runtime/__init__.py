"""Runtime service layer for crisscross-guest.

Re-exports the key symbols so callers can write::

    from crisscross_guest.runtime import CacheService, CacheStatus, ServiceState
"""

from crisscross_guest.runtime.models import CacheStatus, ServiceState
from crisscross_guest.runtime.service import CacheService

__all__ = [
    "CacheService",
    "CacheStatus",
    "ServiceState",
]
