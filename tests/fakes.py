"""Fakes for the push and pull transports used across the test suite."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx

_CLOSED = object()

SERVERS: List[Dict[str, Any]] = [
    {"name": "Relay-A", "type": "relay", "address": "1.1.1.1"},
    {"name": "Store-B", "type": "storage", "address": "2.2.2.2", "region": "eu"},
]


class FakeConnection:
    """Stand-in for a websockets client connection.

    Inbound frames are fed with :meth:`feed`; outbound frames are recorded
    in :attr:`sent`.
    """

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self._inbox: Optional[asyncio.Queue[Any]] = None

    @property
    def inbox(self) -> asyncio.Queue[Any]:
        if self._inbox is None:
            self._inbox = asyncio.Queue()
        return self._inbox

    def feed(self, frame: Any) -> None:
        if not isinstance(frame, str):
            frame = json.dumps(frame)
        self.inbox.put_nowait(frame)

    def sent_json(self) -> List[Any]:
        return [json.loads(s) for s in self.sent]

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.close_code is None:
            self.close_code = code
            self.close_reason = reason
            self.inbox.put_nowait(_CLOSED)

    def drop(self, code: int = 1001, reason: str = "going away") -> None:
        """Simulate the host closing the connection."""
        self.close_code = code
        self.close_reason = reason
        self.inbox.put_nowait(_CLOSED)

    def end_stream(self) -> None:
        """End iteration without a close handshake."""
        self.inbox.put_nowait(_CLOSED)

    def __aiter__(self) -> "FakeConnection":
        return self

    async def __anext__(self) -> Any:
        frame = await self.inbox.get()
        if frame is _CLOSED:
            raise StopAsyncIteration
        return frame


class FakeConnector:
    """Callable replacing ``websockets.asyncio.client.connect``."""

    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.connection = FakeConnection()
        self.error = error
        self.calls: List[str] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeConnection:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.connection


class FakeHost:
    """Serves ``GET /servers`` through :class:`httpx.MockTransport`."""

    def __init__(self, servers: Optional[List[Dict[str, Any]]] = None) -> None:
        self.servers = list(SERVERS if servers is None else servers)
        self.status_code = 200
        self.body: Optional[str] = None
        self.error: Optional[Exception] = None
        self.requests: List[httpx.Request] = []

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.body is not None:
            return httpx.Response(self.status_code, text=self.body)
        return httpx.Response(self.status_code, json=self.servers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


async def settle(rounds: int = 10) -> None:
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class Recorder:
    """Observer that records the arguments of every call."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    @property
    def count(self) -> int:
        return len(self.calls)


