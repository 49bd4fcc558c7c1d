"""Push message dispatch: handler registry and routing table."""

from crisscross_guest.dispatch.handlers import build_handler_registry, make_serverlist_handler
from crisscross_guest.dispatch.table import DispatchTable, Handler, message_type_of

__all__ = [
    "DispatchTable",
    "Handler",
    "build_handler_registry",
    "make_serverlist_handler",
    "message_type_of",
]
