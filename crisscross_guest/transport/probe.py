"""Push transport: the WebSocket connection to the host.

:class:`TransportProbe` owns the single upgrade attempt and reports whether
the push channel is usable.  While the channel is open every inbound frame
is handed to ``on_message`` (normally the dispatch table).  There is no
automatic reconnect; callers decide whether to call
:meth:`TransportProbe.attempt_upgrade` again after a ``wsclose``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from crisscross_guest.constants import (
    EVENT_ERROR,
    EVENT_WS_CLOSE,
    EVENT_WS_READY,
    WS_ABNORMAL_CLOSURE,
    WS_PATH,
)
from crisscross_guest.errors import ConfigurationError, TransportError
from crisscross_guest.events import EventBus
from crisscross_guest.messages import make_request
from crisscross_guest.models import TransportState
from crisscross_guest.transport.http import validate_endpoint

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any, Any], Awaitable[Any]]

DEFAULT_OPEN_TIMEOUT = 10.0  # seconds for the upgrade handshake


def ws_url(host: str, port: int) -> str:
    return f"ws://{host}:{port}{WS_PATH}"


class TransportProbe:
    """Tracks the push connection and its :class:`TransportState`.

    Parameters
    ----------
    bus:
        Receives ``wsready``, ``wsclose`` and ``error``.
    on_message:
        Async callable ``(connection, raw_frame)`` for inbound frames.
    connect:
        Connection factory, ``websockets.asyncio.client.connect`` by default.
    open_timeout:
        Seconds allowed for the handshake.
    """

    def __init__(
        self,
        bus: EventBus,
        *,
        on_message: Optional[MessageHandler] = None,
        connect: Callable[..., Awaitable[Any]] = ws_connect,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
    ) -> None:
        self._bus = bus
        self._on_message = on_message
        self._connect = connect
        self._open_timeout = open_timeout

        self._state: TransportState = TransportState.UNKNOWN
        self._connection: Optional[Any] = None
        self._task: Optional[asyncio.Task[None]] = None
        self.last_close: Optional[Dict[str, Any]] = None

    # ── Properties ───────────────────────────────────────────────────

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def connection(self) -> Optional[Any]:
        return self._connection

    def is_available(self) -> bool:
        return self._state == TransportState.AVAILABLE

    # ── Upgrade ──────────────────────────────────────────────────────

    def attempt_upgrade(self, host: Any, port: Any) -> asyncio.Task[None]:
        """Start one handshake attempt in the background.

        The outcome is only observable through ``wsready``/``wsclose`` and
        :attr:`state`.

        Raises:
            ConfigurationError: If *host*/*port* are missing or mistyped
                (also published as ``error``).
        """
        try:
            validate_endpoint(host, port)
        except ConfigurationError as exc:
            self._bus.emit(EVENT_ERROR, exc)
            raise

        if self._task is not None and not self._task.done():
            logger.warning("Push upgrade already in progress; ignoring new attempt.")
            return self._task

        self._state = TransportState.CONNECTING
        self._task = asyncio.get_running_loop().create_task(
            self._run(ws_url(host, port)), name="push-transport"
        )
        return self._task

    async def _run(self, url: str) -> None:
        logger.debug("Attempting push upgrade to %s", url)
        try:
            conn = await self._connect(url, open_timeout=self._open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            logger.warning("Push upgrade to %s failed: %s", url, exc)
            self._closed(WS_ABNORMAL_CLOSURE, str(exc) or type(exc).__name__)
            return

        self._connection = conn
        self._state = TransportState.AVAILABLE
        logger.info("Upgraded to push connection at %s", url)
        self._bus.emit(EVENT_WS_READY, conn)

        try:
            async for frame in conn:
                await self._deliver(conn, frame)
        except ConnectionClosed as exc:
            logger.info("Push connection closed abnormally: %s", exc)
        finally:
            self._connection = None
            if getattr(conn, "close_code", None) is None:
                await self._close_quietly(conn)
            code = getattr(conn, "close_code", None)
            reason = getattr(conn, "close_reason", None)
            self._closed(WS_ABNORMAL_CLOSURE if code is None else code, reason or "")

    async def _deliver(self, conn: Any, frame: Any) -> None:
        """Hand one frame to ``on_message``; a failure never ends the read loop."""
        if self._on_message is None:
            return
        try:
            await self._on_message(conn, frame)
        except Exception as exc:
            logger.exception("Unhandled error processing push frame.")
            self._bus.emit(EVENT_ERROR, exc)

    @staticmethod
    async def _close_quietly(conn: Any) -> None:
        try:
            await conn.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("Error closing push connection: %s", exc)

    def _closed(self, code: int, reason: str) -> None:
        self._state = TransportState.UNAVAILABLE
        self.last_close = {"code": code, "reason": reason}
        logger.info("Push transport unavailable (code=%s, reason=%r).", code, reason)
        self._bus.emit(EVENT_WS_CLOSE, dict(self.last_close))

    # ── Outbound ─────────────────────────────────────────────────────

    async def send(self, message_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Send a tagged request over the push channel.

        Raises:
            TransportError: If the channel is not available or the send
                fails (also published as ``error``).
        """
        conn = self._connection
        if not self.is_available() or conn is None:
            exc = TransportError(f"Push transport is not available to send '{message_type}'")
            self._bus.emit(EVENT_ERROR, exc)
            raise exc
        try:
            await conn.send(make_request(message_type, payload))
        except ConnectionClosed as exc:
            err = TransportError(f"Push send of '{message_type}' failed", orig_exc=exc)
            self._bus.emit(EVENT_ERROR, err)
            raise err from exc
        logger.debug("Sent '%s' over push transport.", message_type)

    # ── Shutdown ─────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the connection (or abandon a pending handshake)."""
        task = self._task
        if self._connection is not None:
            await self._connection.close()
        elif task is not None and not task.done():
            task.cancel()

        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._state == TransportState.CONNECTING:
            self._state = TransportState.UNAVAILABLE
