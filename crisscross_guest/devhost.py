"""Development mock of the host's guest API.

Serves ``GET /servers`` for the pull transport and ``/ws`` for the push
transport, answering ``listservers`` with a ``serverlist`` message.
``PUT /servers`` replaces the list and pushes it to every connected guest,
which exercises the unsolicited-update path.

Not a production server: it exists to run a guest against locally.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from crisscross_guest.constants import DEFAULT_HOST, DEFAULT_PORT, SERVERS_PATH, WS_PATH

logger = logging.getLogger(__name__)

DEFAULT_SERVERS: List[Dict[str, Any]] = [
    {"name": "relay-1", "type": "relay", "address": "127.0.0.1:16001"},
    {"name": "relay-2", "type": "relay", "address": "127.0.0.1:16002"},
    {"name": "store-1", "type": "storage", "address": "127.0.0.1:17001"},
]


class DevHostState:
    """Server list and connected guests of a mock host."""

    def __init__(self, servers: Optional[Iterable[Dict[str, Any]]] = None) -> None:
        self.servers: List[Dict[str, Any]] = list(DEFAULT_SERVERS if servers is None else servers)
        self.guests: Set[WebSocket] = set()
        self.replies: List[Dict[str, Any]] = []

    def serverlist_message(self) -> str:
        return json.dumps({"header": {"type": "serverlist"}, "servers": self.servers})

    async def broadcast(self) -> int:
        """Push the current list to every connected guest.  Returns the count."""
        sent = 0
        for ws in list(self.guests):
            try:
                await ws.send_text(self.serverlist_message())
                sent += 1
            except (RuntimeError, WebSocketDisconnect) as exc:
                logger.warning("Dropping guest connection: %s", exc)
                self.guests.discard(ws)
        return sent


def create_app(state: Optional[DevHostState] = None) -> Starlette:
    """Build the mock host application."""
    state = state or DevHostState()

    async def get_servers(request: Request) -> JSONResponse:
        return JSONResponse(state.servers)

    async def put_servers(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse({"success": 0, "message": "Body is not JSON"}, status_code=400)
        if not isinstance(body, list):
            return JSONResponse(
                {"success": 0, "message": "Expected an array of servers"}, status_code=400
            )
        state.servers = body
        pushed = await state.broadcast()
        logger.info("Server list replaced (%d servers), pushed to %d guest(s).", len(body), pushed)
        return JSONResponse({"success": 1, "pushed": pushed})

    async def guest_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        state.guests.add(websocket)
        logger.info("Guest connected (%d total).", len(state.guests))
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    msg = json.loads(raw)
                except ValueError:
                    logger.warning("Ignoring non-JSON frame from guest: %r", raw[:100])
                    continue
                if not isinstance(msg, dict):
                    continue
                if msg.get("type") == "listservers":
                    await websocket.send_text(state.serverlist_message())
                elif "success" in msg:
                    state.replies.append(msg)
                    logger.debug("Guest reply: %s", msg)
                else:
                    logger.debug("Unhandled guest message: %s", msg)
        except WebSocketDisconnect:
            pass
        finally:
            state.guests.discard(websocket)
            logger.info("Guest disconnected (%d left).", len(state.guests))

    app = Starlette(
        debug=False,
        routes=[
            Route(SERVERS_PATH, endpoint=get_servers, methods=["GET"]),
            Route(SERVERS_PATH, endpoint=put_servers, methods=["PUT"]),
            WebSocketRoute(WS_PATH, endpoint=guest_socket),
        ],
    )
    app.state.devhost = state
    return app


def load_servers_file(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array of servers")
    return data


async def serve(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    servers: Optional[Iterable[Dict[str, Any]]] = None,
) -> None:
    """Run the mock host until interrupted."""
    config = uvicorn.Config(
        app=create_app(DevHostState(servers)),
        host=host,
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    logger.info("Starting mock host on http://%s:%s", host, port)
    await server.serve()
