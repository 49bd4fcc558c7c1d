"""Server cache: snapshot store, refresh timer and reload strategy."""

from crisscross_guest.cache.reload import ReloadStrategy
from crisscross_guest.cache.store import CacheStore, ReloadCallback
from crisscross_guest.cache.timer import RefreshTimer

__all__ = [
    "CacheStore",
    "RefreshTimer",
    "ReloadCallback",
    "ReloadStrategy",
]
