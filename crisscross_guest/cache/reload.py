"""Reload strategy: refresh the cache over push or pull.

When the push transport is available a ``listservers`` request is sent and
the reply later lands in the store through the dispatch table.  Otherwise
the list is pulled over HTTP and applied directly.

Reloads are not correlated with their callers: any successful reload
satisfies every callback queued before it completes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set, Tuple

from crisscross_guest.cache.store import CacheStore, ReloadCallback
from crisscross_guest.constants import EVENT_ERROR
from crisscross_guest.errors import (
    ConfigurationError,
    GuestBaseError,
    MalformedResponseError,
    ReloadTimeoutError,
    TransportError,
)
from crisscross_guest.events import EventBus
from crisscross_guest.models import ServerRecord
from crisscross_guest.transport.http import PullClient
from crisscross_guest.transport.probe import TransportProbe

logger = logging.getLogger(__name__)

LIST_SERVERS_REQUEST = "listservers"


class ReloadStrategy:
    """Chooses a transport for each reload request."""

    def __init__(
        self,
        store: CacheStore,
        probe: TransportProbe,
        puller: PullClient,
        bus: EventBus,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> None:
        self._store = store
        self._probe = probe
        self._puller = puller
        self._bus = bus
        self.host = host
        self.port = port
        self._background: Set[asyncio.Task[None]] = set()
        self.push_requests = 0
        self.pull_requests = 0

    def set_endpoint(self, host: Optional[str], port: Optional[int]) -> None:
        self.host = host
        self.port = port

    # ── Reload ───────────────────────────────────────────────────────

    async def trigger_reload(self, callback: Optional[ReloadCallback] = None) -> None:
        """Reload the cache via push or pull.

        *callback* is queued and called with the new snapshot on the next
        successful apply, whichever request produced it.

        Raises:
            ConfigurationError: If a pull is needed before host/port are set.
            TransportError: On pull network failures or a failed push send.
        """
        if callback is not None:
            self._store.enqueue(callback)

        if self._probe.is_available():
            self.push_requests += 1
            await self._probe.send(LIST_SERVERS_REQUEST)
            return

        await self._pull()

    async def _pull(self) -> None:
        self.pull_requests += 1
        try:
            servers = await self._puller.fetch_servers(self.host, self.port)
        except MalformedResponseError as exc:
            # Reload failed; pending callbacks stay queued for the next success.
            self._bus.emit(EVENT_ERROR, exc)
            return
        except (ConfigurationError, TransportError) as exc:
            self._bus.emit(EVENT_ERROR, exc)
            raise
        self._store.apply(servers)

    def spawn_reload(self, callback: Optional[ReloadCallback] = None) -> asyncio.Task[None]:
        """Queue *callback* now and run the reload as a background task."""
        if callback is not None:
            self._store.enqueue(callback)
        task = asyncio.get_running_loop().create_task(self.trigger_reload(), name="cache-reload")
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, GuestBaseError):
            logger.warning("Background reload failed: %s", exc)
        elif exc is not None:
            logger.error("Unexpected error in background reload: %r", exc)
            self._bus.emit(EVENT_ERROR, exc)

    async def reload(self, timeout: Optional[float] = None) -> Tuple[ServerRecord, ...]:
        """Trigger a reload and wait for the next snapshot.

        Raises:
            ReloadTimeoutError: If no reload completes within *timeout*
                seconds; the waiter is removed from the queue.
            ConfigurationError, TransportError: As for :meth:`trigger_reload`.
        """
        waiter: asyncio.Future[Tuple[ServerRecord, ...]] = (
            asyncio.get_running_loop().create_future()
        )
        try:
            await self.trigger_reload(waiter)
        except GuestBaseError:
            self._store.discard_pending(waiter)
            raise

        try:
            return await asyncio.wait_for(waiter, timeout=timeout)
        except asyncio.TimeoutError:
            self._store.discard_pending(waiter)
            raise ReloadTimeoutError(timeout or 0.0) from None

    # ── Shutdown ─────────────────────────────────────────────────────

    async def cancel_background(self) -> None:
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def background_count(self) -> int:
        return len(self._background)

