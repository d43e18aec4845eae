"""Errors surfaced by the client.

Every failure a caller can observe is one of:
- SerializationError: a parameter (or a reply) could not be converted, nothing was sent
- NotifyFailed: a notification could not be handed to the transport
- RequestFailed: a request never got an application-level reply
- ErrorReturned: the core replied with an error payload

Transports themselves raise builtin ConnectionError/TimeoutError, plus
TransportError for protocol violations. The client translates those into
the kinds above.
"""

from __future__ import annotations

from typing import Any


class ClientError(Exception):
    """Base class for all client errors."""

    pass


class SerializationError(ClientError):
    """A value could not be converted to or from its wire representation."""

    pass


class NotifyFailed(ClientError):
    """The transport could not hand off a notification."""

    def __init__(self, method: str, reason: str | None = None) -> None:
        message = f"Notification '{method}' failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.method = method


class RequestFailed(ClientError):
    """A request failed at the transport level (disconnect, timeout, bad reply)."""

    def __init__(self, method: str, reason: str | None = None) -> None:
        message = f"Request '{method}' failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.method = method


class ErrorReturned(ClientError):
    """The core replied to a request with an error payload.

    The payload is kept verbatim in `value`; its contents are not interpreted.
    """

    def __init__(self, value: Any) -> None:
        super().__init__(f"Core returned an error: {value!r}")
        self.value = value


class TransportError(ConnectionError):
    """The connection delivered something that violates the wire protocol."""

    pass
