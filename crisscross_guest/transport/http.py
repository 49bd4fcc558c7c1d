"""Pull transport: fetch the server list from the host over HTTP.

Calls the host's local HTTP API at ``http://{host}:{port}/servers``.  The
response must be a JSON array of server records.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from crisscross_guest.constants import DEFAULT_REQUEST_TIMEOUT, SERVERS_PATH
from crisscross_guest.errors import ConfigurationError, MalformedResponseError, TransportError
from crisscross_guest.models import ServerRecord, parse_records

logger = logging.getLogger(__name__)


def validate_endpoint(host: Any, port: Any) -> None:
    """Raise :class:`ConfigurationError` unless *host*/*port* are usable."""
    if not isinstance(host, str) or not host.strip():
        raise ConfigurationError(f"No usable hostname configured (got {host!r})")
    if not isinstance(port, int) or isinstance(port, bool):
        raise ConfigurationError(f"No usable port configured (got {port!r})")


def servers_url(host: str, port: int) -> str:
    return f"http://{host}:{port}{SERVERS_PATH}"


class PullClient:
    """Async HTTP client for the host's ``/servers`` endpoint.

    Parameters
    ----------
    timeout:
        HTTP request timeout in seconds.
    transport:
        Optional :mod:`httpx` transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ── lifecycle ───────────────────────────────────────────────────

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ── public API ──────────────────────────────────────────────────

    async def fetch_servers(self, host: str, port: int) -> List[ServerRecord]:
        """Fetch and validate the server list.

        Raises:
            ConfigurationError: If *host* or *port* is missing.
            TransportError: On connection failures, timeouts or non-2xx status.
            MalformedResponseError: If the body is not a JSON list of records.
        """
        validate_endpoint(host, port)
        url = servers_url(host, port)

        try:
            client = self._ensure_client()
            resp = await client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or type(exc).__name__, url=url, orig_exc=exc) from exc

        try:
            data = json.loads(resp.text)
        except ValueError as exc:
            raise MalformedResponseError(
                f"Response is not valid JSON: {resp.text[:200]!r}", url=url, orig_exc=exc
            ) from exc

        if not isinstance(data, list):
            raise MalformedResponseError(
                f"Expected an array of servers, received: {type(data).__name__}", url=url
            )

        try:
            servers = parse_records(data)
        except ValidationError as exc:
            raise MalformedResponseError(
                f"Invalid server record(s): {exc.error_count()} error(s)", url=url, orig_exc=exc
            ) from exc

        logger.debug("Pulled %d server(s) from %s.", len(servers), url)
        return servers
