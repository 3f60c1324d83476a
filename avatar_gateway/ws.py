"""Open WebSocket connections to the agent gateway."""

from __future__ import annotations

import asyncio
from urllib.parse import urlsplit

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from .errors import (
    GatewayConnectionError,
    GatewayHandshakeError,
    GatewayTimeout,
)

GATEWAY_SCHEMES = ("ws", "wss")


async def connect_websocket(
    url: str,
    *,
    ping_interval: int | None = 20,
    timeout: float = 15.0,
    close_timeout: float = 5.0,
) -> ClientConnection:
    """Open the gateway socket and translate library failures.

    Frames have no size limit; agent replies can be large.

    Args:
        url: ws:// or wss:// gateway endpoint
        ping_interval: Keepalive ping interval in seconds (None disables)
        timeout: Budget for TCP connect plus the opening handshake
        close_timeout: Budget for the closing handshake

    Raises:
        GatewayHandshakeError: Bad URL or the HTTP upgrade was refused.
        GatewayTimeout: The socket did not open within ``timeout``.
        GatewayConnectionError: Network failure.
    """
    parts = urlsplit(url)
    if parts.scheme not in GATEWAY_SCHEMES or not parts.hostname:
        raise GatewayHandshakeError(f"Unsupported gateway URL: {url!r}")

    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ping_interval=ping_interval,
                close_timeout=close_timeout,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise GatewayTimeout(f"Timed out opening {parts.netloc}") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise GatewayHandshakeError(f"WebSocket handshake failed: {err}") from err
    except (OSError, WebSocketException) as err:
        raise GatewayConnectionError(f"WebSocket connection failed: {err}") from err
