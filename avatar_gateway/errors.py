"""Client error types for agent gateway interactions."""

from __future__ import annotations


class GatewayClientError(Exception):
    """Base error for agent gateway client failures."""


class GatewayTimeout(GatewayClientError):
    """Timeout while communicating with the gateway."""


class GatewayConnectionError(GatewayClientError):
    """Network connection to the gateway failed."""


class GatewayNotConnectedError(GatewayConnectionError):
    """Operation requires an authenticated session."""


class GatewayRequestAbandoned(GatewayConnectionError):
    """Pending request dropped because its session went away."""


class GatewayHandshakeError(GatewayClientError):
    """Gateway rejected or aborted the connect handshake."""


class GatewayResponseError(GatewayClientError):
    """Gateway answered a request with ok=false."""

    def __init__(self, message: str, *, code: str | int | None = None) -> None:
        super().__init__(message)
        self.code = code
