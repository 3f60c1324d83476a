"""WebSocket client wrapper for the agent gateway."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from .errors import GatewayConnectionError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class GatewayWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class GatewayWsMessage:
    """Normalized WebSocket message payload."""

    type: GatewayWsMessageType
    data: str | None = None
    close_code: int | None = None
    close_reason: str | None = None


class GatewayWsClient:
    """Wrapper around the websockets library for one gateway session."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def connect(
        self,
        url: str,
        *,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
        close_timeout: float = 5.0,
    ) -> None:
        """Connect to the gateway websocket."""
        self._ws = await connect_websocket(
            url,
            ping_interval=ping_interval,
            timeout=timeout,
            close_timeout=close_timeout,
        )

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            await self._ws.close(code=code, reason=reason)

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload to the websocket."""
        if self._ws is None:
            raise GatewayConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(json.dumps(payload, ensure_ascii=False))
        except ConnectionClosed as err:
            raise GatewayConnectionError("WebSocket is closed") from err

    def __aiter__(self) -> AsyncIterator[GatewayWsMessage]:
        if self._ws is None:
            raise GatewayConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[GatewayWsMessage]:
        if self._ws is None:
            raise GatewayConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed as err:
            code = err.rcvd.code if err.rcvd is not None else None
            reason = err.rcvd.reason if err.rcvd is not None else None
            yield GatewayWsMessage(
                type=GatewayWsMessageType.CLOSED,
                close_code=code,
                close_reason=reason,
            )
        except Exception:
            yield GatewayWsMessage(type=GatewayWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield GatewayWsMessage(
                type=GatewayWsMessageType.CLOSED,
                close_code=getattr(self._ws, "close_code", None),
                close_reason=getattr(self._ws, "close_reason", None),
            )

    @staticmethod
    def _normalize_message(msg: Any) -> GatewayWsMessage | None:
        """Normalize library frames into GatewayWsMessage; binary is skipped."""
        if isinstance(msg, (bytes, bytearray, memoryview)):
            return None
        if isinstance(msg, str):
            return GatewayWsMessage(GatewayWsMessageType.TEXT, msg)
        return GatewayWsMessage(GatewayWsMessageType.TEXT, str(msg))
