"""Custom exception classes for crisscross-guest."""

from typing import Optional


class GuestBaseError(Exception):
    """Base class for all custom exceptions in crisscross-guest."""

    pass


class ConfigurationError(GuestBaseError):
    """Raised when the host/port or the configuration file is missing or invalid."""

    pass


class TransportError(GuestBaseError):
    """
    Raised when a pull request fails at the network level, or when a
    response from the host cannot be turned into a server list.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        orig_exc: Optional[Exception] = None,
    ):
        self.url = url
        self.orig_exc = orig_exc

        full_msg = "Transport error"
        if url:
            full_msg += f" (url: {url})"
        full_msg += f": {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__})"
        super().__init__(full_msg)


class ProtocolError(GuestBaseError):
    """Raised for inbound push messages that cannot be routed to a handler."""

    def __init__(self, message: str, payload: object = None):
        self.payload = payload
        super().__init__(message)


class HandlerError(GuestBaseError):
    """Raised when a registered push-message handler reports a failure."""

    def __init__(self, message_type: str, orig_exc: Optional[Exception] = None):
        self.message_type = message_type
        self.orig_exc = orig_exc

        full_msg = f"Error in handler for '{message_type}'"
        if orig_exc:
            full_msg += f": {orig_exc}"
        super().__init__(full_msg)


class ReloadTimeoutError(GuestBaseError):
    """Raised to a waiting caller when no reload completes within the timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"No cache reload completed within {timeout:g}s")


class MalformedResponseError(TransportError):
    """Raised when a pull response is not JSON or not a list of server records."""

    pass
