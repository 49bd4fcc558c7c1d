"""Shared constants for crisscross-guest."""

APP_NAME = "crisscross-guest"
APP_VERSION = "0.1.0"

# Network defaults (must match the host's guest port)
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 15001

# Endpoints exposed by the host
SERVERS_PATH = "/servers"
WS_PATH = "/ws"

# Cache defaults
DEFAULT_CACHE_TTL = 120.0  # seconds between background refreshes
DEFAULT_REQUEST_TIMEOUT = 10.0  # seconds for a pull request

# Close code reported when the push handshake never completes
WS_ABNORMAL_CLOSURE = 1006

# Logging defaults
LOG_DIR = "logs"
DEFAULT_LOG_LEVEL = "INFO"

# Event names published on the bus
EVENT_ERROR = "error"
EVENT_WS_READY = "wsready"
EVENT_WS_CLOSE = "wsclose"
EVENT_SERVERS_ADDED = "serversadded"
EVENT_SERVER_CHANGE = "serverchange"

KNOWN_EVENTS = frozenset(
    {
        EVENT_ERROR,
        EVENT_WS_READY,
        EVENT_WS_CLOSE,
        EVENT_SERVERS_ADDED,
        EVENT_SERVER_CHANGE,
    }
)
