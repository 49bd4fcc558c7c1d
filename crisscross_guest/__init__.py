"""
Crisscross Guest - a client-side cache of the network's server list.

The guest keeps the host's list of servers in memory, refreshes it over a
WebSocket push channel when one is available and over HTTP otherwise, and
publishes ``serversadded`` / ``serverchange`` events as the list changes.
"""

from crisscross_guest.config import GuestConfig, load_config
from crisscross_guest.constants import APP_NAME, APP_VERSION
from crisscross_guest.errors import (
    ConfigurationError,
    GuestBaseError,
    HandlerError,
    MalformedResponseError,
    ProtocolError,
    ReloadTimeoutError,
    TransportError,
)
from crisscross_guest.models import ServerRecord
from crisscross_guest.runtime import CacheService

__version__ = APP_VERSION
__app_name__ = APP_NAME

__all__ = [
    "CacheService",
    "ConfigurationError",
    "GuestBaseError",
    "GuestConfig",
    "HandlerError",
    "MalformedResponseError",
    "ProtocolError",
    "ReloadTimeoutError",
    "ServerRecord",
    "TransportError",
    "__app_name__",
    "__version__",
    "load_config",
]
