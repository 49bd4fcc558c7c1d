"""Built-in push message handlers.

Handlers are async callables ``(connection, payload) -> Optional[dict]``.
Raising signals failure; the returned dict is merged into the success
envelope.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from crisscross_guest.cache.store import CacheStore
from crisscross_guest.dispatch.table import Handler
from crisscross_guest.models import parse_records

logger = logging.getLogger(__name__)


def make_serverlist_handler(store: CacheStore) -> Handler:
    """Handler for ``serverlist``: the host's list of servers in the network.

    The message carries the full list under ``servers``; applying it to the
    store publishes the change events and drains pending reload callbacks.
    """

    async def serverlist(connection: Any, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if "servers" not in payload:
            raise ValueError("serverlist message has no 'servers' field")
        servers = parse_records(payload["servers"])
        store.apply(servers)
        logger.debug("Applied %d server(s) from push transport.", len(servers))
        return None

    return serverlist


def build_handler_registry(store: CacheStore) -> Dict[str, Handler]:
    """Return the static message-type → handler table."""
    return {
        "serverlist": make_serverlist_handler(store),
    }
