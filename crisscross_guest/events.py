"""Event bus owned by a :class:`~crisscross_guest.runtime.CacheService`.

Two kinds of consumers are supported:

* named observers, called synchronously in registration order by
  :meth:`EventBus.emit` (the usual way application code reacts to
  ``serverchange`` and friends);
* bounded queue listeners created with :meth:`EventBus.listen`, used by
  long-running consumers such as the ``watch`` CLI command.  Events are
  dropped for listeners that fall behind.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List

from crisscross_guest.constants import EVENT_ERROR, KNOWN_EVENTS

logger = logging.getLogger(__name__)

Observer = Callable[..., Any]


class EventBus:
    """Publish/subscribe channel for named cache events."""

    def __init__(self, *, history: int = 200, queue_size: int = 256) -> None:
        self._observers: Dict[str, List[Observer]] = {}
        self._listeners: List[asyncio.Queue[Dict[str, Any]]] = []
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history)
        self._queue_size = queue_size

    # ── observers ────────────────────────────────────────────────────

    def subscribe(self, event: str, observer: Observer) -> None:
        """Register *observer* to be called with the arguments of *event*."""
        if event not in KNOWN_EVENTS:
            logger.warning("Subscribing to unknown event '%s'.", event)
        self._observers.setdefault(event, []).append(observer)

    def unsubscribe(self, event: str, observer: Observer) -> None:
        """Remove a previously registered observer.  Unknown observers are ignored."""
        observers = self._observers.get(event)
        if not observers:
            return
        self._observers[event] = [o for o in observers if o is not observer]

    def observers(self, event: str) -> List[Observer]:
        return list(self._observers.get(event, []))

    # ── queue listeners ──────────────────────────────────────────────

    def listen(self) -> asyncio.Queue[Dict[str, Any]]:
        """Create a queue that receives every emitted event record."""
        queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        self._listeners.append(queue)
        logger.debug("Event listener added (total: %d).", len(self._listeners))
        return queue

    def unlisten(self, queue: asyncio.Queue[Dict[str, Any]]) -> None:
        try:
            self._listeners.remove(queue)
            logger.debug("Event listener removed (total: %d).", len(self._listeners))
        except ValueError:
            pass

    # ── publishing ───────────────────────────────────────────────────

    def emit(self, event: str, *args: Any) -> Dict[str, Any]:
        """Publish *event* to observers and listeners.

        An observer that raises is logged and skipped; it never prevents
        the remaining observers from running.
        """
        if event == EVENT_ERROR:
            logger.error("Cache error: %s", args[0] if args else "<no details>")
        else:
            logger.debug("Event '%s' emitted.", event)

        record: Dict[str, Any] = {
            "event": event,
            "args": args,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._history.append(record)

        for observer in list(self._observers.get(event, [])):
            try:
                observer(*args)
            except Exception:
                logger.exception("Observer %r for event '%s' raised.", observer, event)

        for queue in self._listeners:
            try:
                queue.put_nowait(record)
            except asyncio.QueueFull:
                logger.warning("Dropped '%s' event for slow listener.", event)
        return record

    def recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Return up to *limit* most recent event records (oldest first)."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]
