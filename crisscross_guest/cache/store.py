"""Authoritative in-process server list.

Reduces network overhead and latency by caching the host's server list.
The snapshot is replaced wholesale by :meth:`CacheStore.apply`; single
records are dropped by :meth:`CacheStore.evict` when a server is reported
as unhealthy.  Neither method suspends, so a delta is always computed
against a stable snapshot.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set, Tuple, Union

from crisscross_guest.cache.timer import RefreshTimer
from crisscross_guest.constants import (
    DEFAULT_CACHE_TTL,
    EVENT_ERROR,
    EVENT_SERVER_CHANGE,
    EVENT_SERVERS_ADDED,
)
from crisscross_guest.events import EventBus
from crisscross_guest.models import ServerRecord, normalize

logger = logging.getLogger(__name__)

ReloadCallback = Callable[[Tuple[ServerRecord, ...]], Any]


def require_address(address: Any) -> str:
    """Return the normalised *address*, or raise ``ValueError`` if it is blank."""
    if not isinstance(address, str) or not address.strip():
        raise ValueError(f"Server issue reported for undefined address {address!r}")
    return normalize(address)


class CacheStore:
    """Holds the current snapshot and the callbacks waiting for the next one.

    Parameters
    ----------
    bus:
        Event bus receiving ``serversadded`` / ``serverchange`` / ``error``.
    cache_ttl:
        Seconds between background refreshes once the cache is populated.
    on_refresh:
        Async callable run by the refresh timer (normally a reload with no
        callback).  When ``None`` no timer is ever started.
    """

    def __init__(
        self,
        bus: EventBus,
        *,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        on_refresh: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        self._bus = bus
        self._cache_ttl = cache_ttl
        self._on_refresh = on_refresh
        self._servers: List[ServerRecord] = []
        self._pending: List[ReloadCallback] = []
        self._timer: Optional[RefreshTimer] = None
        self._callback_tasks: Set[asyncio.Future[Any]] = set()
        self.apply_count = 0

    # ── Properties ───────────────────────────────────────────────────

    @property
    def servers(self) -> Tuple[ServerRecord, ...]:
        return tuple(self._servers)

    @property
    def timer(self) -> Optional[RefreshTimer]:
        return self._timer

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._servers)

    # ── Pending callbacks ────────────────────────────────────────────

    def enqueue(self, callback: ReloadCallback) -> None:
        """Queue *callback* (or an :class:`asyncio.Future`) for the next :meth:`apply`."""
        if not callable(callback) and not isinstance(callback, asyncio.Future):
            raise TypeError(f"Reload callback must be callable, got {type(callback).__name__}")
        self._pending.append(callback)

    def discard_pending(self, callback: ReloadCallback) -> bool:
        """Remove a queued callback.  Returns ``True`` if it was queued."""
        try:
            self._pending.remove(callback)
            return True
        except ValueError:
            return False

    # ── Mutation ─────────────────────────────────────────────────────

    def apply(self, new_records: Iterable[Union[ServerRecord, dict]]) -> Tuple[ServerRecord, ...]:
        """Replace the snapshot with *new_records* and publish the delta.

        Returns the new snapshot.
        """
        servers = [
            r if isinstance(r, ServerRecord) else ServerRecord.model_validate(r)
            for r in new_records
        ]

        if self._timer is None and self._on_refresh is not None:
            self._timer = RefreshTimer(
                self._cache_ttl,
                self._on_refresh,
                on_error=lambda exc: self._bus.emit(EVENT_ERROR, exc),
            )
            self._timer.start()

        known = {s.key for s in self._servers}
        added = [s for s in servers if s.key not in known]
        if added:
            logger.info("%d server(s) added: %s", len(added), ", ".join(s.name for s in added))
            self._bus.emit(EVENT_SERVERS_ADDED, list(added))

        changed = len(servers) != len(self._servers) or bool(added)
        if changed:
            self._bus.emit(EVENT_SERVER_CHANGE, list(servers))

        self._servers = servers
        self.apply_count += 1
        logger.debug(
            "Server cache updated: %d server(s), changed=%s.", len(servers), changed
        )

        self._drain_pending()
        return self.servers

    def evict(self, address: str) -> Optional[ServerRecord]:
        """Drop the first server whose address matches *address*.

        A miss is a no-op: the server may already be gone after a reload.
        Returns the removed record, if any.

        Raises:
            ValueError: If *address* is not a non-empty string.
        """
        wanted = require_address(address)
        for idx, server in enumerate(self._servers):
            if server.address_key == wanted:
                del self._servers[idx]
                logger.info("Evicted server '%s' (%s) from cache.", server.name, server.address)
                return server
        logger.debug("Server %s is not in the cache anymore.", address)
        return None

    # ── Queries ──────────────────────────────────────────────────────

    def list_servers(self, type: str = "") -> Tuple[ServerRecord, ...]:
        """Return all cached servers, or only those of the given *type*."""
        wanted = normalize(type)
        if not wanted:
            return self.servers
        return tuple(s for s in self._servers if s.type_key == wanted)

    # ── Shutdown ─────────────────────────────────────────────────────

    async def stop(self) -> None:
        """Stop the refresh timer.  The timer is never started again."""
        if self._timer is not None:
            await self._timer.stop()

    # ── Internal ─────────────────────────────────────────────────────

    def _drain_pending(self) -> None:
        callbacks, self._pending = self._pending, []
        if not callbacks:
            return

        snapshot = self.servers
        logger.debug("Invoking %d pending reload callback(s).", len(callbacks))
        for callback in callbacks:
            if isinstance(callback, asyncio.Future):
                if not callback.done():
                    callback.set_result(snapshot)
                continue
            try:
                result = callback(snapshot)
            except Exception as exc:
                logger.exception("Reload callback %r raised.", callback)
                self._bus.emit(EVENT_ERROR, exc)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Future[Any]) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async reload callback failed: %s", exc)
            self._bus.emit(EVENT_ERROR, exc)
