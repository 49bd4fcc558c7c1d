"""Routes inbound push messages to the registered handlers.

Every routed message gets exactly one reply envelope on the connection it
arrived on, except frames flagged as failures by the host, which are only
reported.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from crisscross_guest.constants import EVENT_ERROR
from crisscross_guest.errors import HandlerError, ProtocolError
from crisscross_guest.events import EventBus
from crisscross_guest.messages import make_envelope

logger = logging.getLogger(__name__)

Handler = Callable[[Any, Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]

MSG_MALFORMED = "Malformed message"
MSG_NO_TYPE = "Payload header has no message type"
MSG_NO_HANDLER = "No handler defined for message type"
MSG_NOT_CALLABLE = "Handler is not a function"
MSG_HANDLER_FAILED = "Error in handler"


def message_type_of(payload: Any) -> Optional[str]:
    """Return ``payload["header"]["type"]``, or ``None`` unless it is a non-empty string."""
    if not isinstance(payload, dict):
        return None
    header = payload.get("header")
    if not isinstance(header, dict):
        return None
    message_type = header.get("type")
    if not isinstance(message_type, str) or not message_type:
        return None
    return message_type


class DispatchTable:
    """Static message-type → handler mapping.

    Parameters
    ----------
    handlers:
        Mapping of message type to async handler
        ``(connection, payload) -> Optional[dict]``.  Built once at
        startup (see :func:`crisscross_guest.dispatch.build_handler_registry`).
    bus:
        Receives an ``error`` event for every failed message.
    """

    def __init__(self, handlers: Mapping[str, Any], bus: EventBus) -> None:
        self._handlers: Dict[str, Any] = dict(handlers)
        self._bus = bus

    @property
    def message_types(self) -> list[str]:
        return sorted(self._handlers)

    async def handle_frame(self, connection: Any, frame: Any) -> None:
        """Decode a raw push frame and dispatch it."""
        try:
            payload = json.loads(frame)
        except (TypeError, ValueError):
            await self._reject(connection, MSG_MALFORMED, frame)
            return
        if not isinstance(payload, dict):
            await self._reject(connection, MSG_MALFORMED, payload)
            return
        await self.dispatch(connection, message_type_of(payload), payload)

    async def dispatch(
        self,
        connection: Any,
        message_type: Optional[str],
        payload: Dict[str, Any],
    ) -> None:
        """Route *payload* to the handler registered for its header type."""
        status = payload.get("status")
        # Only an integer 0 flags a failure; false and 0.0 do not.
        if type(status) is int and status == 0:
            self._bus.emit(
                EVENT_ERROR,
                ProtocolError(f"Received error packet from push transport: {payload!r}", payload),
            )
            return

        header_type = message_type_of(payload)
        if header_type is None:
            await self._reject(connection, MSG_NO_TYPE, payload)
            return

        if header_type not in self._handlers:
            await self._reject(connection, MSG_NO_HANDLER, payload)
            return

        handler = self._handlers[header_type]
        if not callable(handler):
            await self._reject(connection, MSG_NOT_CALLABLE, payload)
            return

        reply_type = message_type if message_type is not None else header_type
        logger.debug("Calling handler for '%s'.", header_type)
        try:
            result = await handler(connection, payload)
        except Exception as exc:
            logger.warning("Handler for '%s' failed: %s", header_type, exc)
            await self._send(connection, make_envelope(MSG_HANDLER_FAILED))
            self._bus.emit(EVENT_ERROR, HandlerError(header_type, exc))
            return

        await self._send(
            connection,
            make_envelope(None, {**(result or {}), "header": {"type": reply_type}}),
        )

    # ── Internal ─────────────────────────────────────────────────────

    async def _reject(self, connection: Any, msg: str, payload: Any) -> None:
        await self._send(connection, make_envelope(msg))
        self._bus.emit(EVENT_ERROR, ProtocolError(f"{msg} - payload: {payload!r}", payload))

    async def _send(self, connection: Any, envelope: str) -> None:
        try:
            await connection.send(envelope)
        except Exception as exc:
            logger.warning("Could not send reply envelope: %s", exc)
            self._bus.emit(EVENT_ERROR, exc)
