"""Recurring background refresh of the server cache.

Runs an asyncio task that sleeps for the cache TTL and then awaits the
refresh action, forever, until :meth:`RefreshTimer.stop` is called.  The
timer is never rescheduled: once stopped it stays stopped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from crisscross_guest.errors import GuestBaseError

logger = logging.getLogger(__name__)


class RefreshTimer:
    """Fixed-interval async timer.

    Parameters
    ----------
    interval:
        Seconds between ticks (the cache TTL).
    action:
        Async callable invoked on every tick with no arguments.
    on_error:
        Called with any unexpected exception raised by *action*.
    """

    def __init__(
        self,
        interval: float,
        action: Callable[[], Awaitable[Any]],
        *,
        on_error: Optional[Callable[[BaseException], Any]] = None,
    ) -> None:
        self._interval = interval
        self._action = action
        self._on_error = on_error
        self._task: Optional[asyncio.Task[None]] = None
        self._stopped = False
        self.ticks = 0

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        """Begin ticking.  Requires a running event loop."""
        if self._stopped or (self._task is not None and not self._task.done()):
            return
        self._task = asyncio.get_running_loop().create_task(
            self._tick_loop(), name="cache-refresh-timer"
        )
        logger.info("Cache refresh timer started (every %.1fs).", self._interval)

    async def stop(self) -> None:
        """Cancel the timer and await task cleanup."""
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Cache refresh timer stopped.")

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Internal ─────────────────────────────────────────────────────

    async def _tick_loop(self) -> None:
        while not self._stopped:
            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                return

            self.ticks += 1
            logger.debug("Cache TTL expired, triggering background reload.")
            try:
                await self._action()
            except GuestBaseError as exc:
                # Already published on the bus by the reload path.
                logger.warning("Background reload failed: %s", exc)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Unexpected error in background reload.")
                if self._on_error is not None:
                    self._on_error(exc)
