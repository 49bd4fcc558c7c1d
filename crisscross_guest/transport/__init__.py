"""Pull (HTTP) and push (WebSocket) transports to the host."""

from crisscross_guest.transport.http import PullClient, servers_url, validate_endpoint
from crisscross_guest.transport.probe import TransportProbe, ws_url

__all__ = [
    "PullClient",
    "TransportProbe",
    "servers_url",
    "validate_endpoint",
    "ws_url",
]
