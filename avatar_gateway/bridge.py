"""Connector variant that talks to the gateway through its HTTP bridge.

The bridge exposes a non-streaming chat-completions endpoint. Replies are
delivered to subscribers as a complete ``text`` chunk followed by ``end``,
so consumers can switch between this connector and the WebSocket one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import aiohttp

from .decoder import EventDecoder
from .errors import GatewayClientError, GatewayConnectionError
from .http import DEFAULT_BRIDGE_MODEL, DEFAULT_BRIDGE_URL, BridgeHttpClient
from .listeners import CallbackRegistry
from .models import ConnectionStatus, MessageChunk

_LOGGER = logging.getLogger(__name__)


class BridgeConnector:
    """Request/response connector over the bridge HTTP API.

    Usage:
        connector = BridgeConnector("http://localhost:12394")
        connector.on_message(my_chunk_handler)
        await connector.connect()
        await connector.send_message("hello")
        await connector.disconnect()
    """

    def __init__(
        self,
        bridge_url: str = DEFAULT_BRIDGE_URL,
        *,
        session: aiohttp.ClientSession | None = None,
        token: str | None = None,
        model: str = DEFAULT_BRIDGE_MODEL,
    ) -> None:
        self.bridge_url = bridge_url
        self._token = token
        self._model = model
        self._session = session
        self._owns_session = session is None
        self._http: BridgeHttpClient | None = None

        self._status = ConnectionStatus.DISCONNECTED
        self._decoder = EventDecoder()
        self._inflight: asyncio.Task[str] | None = None
        self._message_callbacks: CallbackRegistry[MessageChunk] = CallbackRegistry(
            "Message"
        )
        self._status_callbacks: CallbackRegistry[ConnectionStatus] = CallbackRegistry(
            "Status"
        )

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def get_status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED

    def on_message(self, callback: Callable[[MessageChunk], None]) -> Callable[[], None]:
        return self._message_callbacks.add(callback)

    def on_status_change(
        self, callback: Callable[[ConnectionStatus], None]
    ) -> Callable[[], None]:
        unsubscribe = self._status_callbacks.add(callback)
        self._status_callbacks.call(callback, self._status)
        return unsubscribe

    def _client(self) -> BridgeHttpClient:
        if self._http is None:
            if self._session is None:
                self._session = aiohttp.ClientSession()
            self._http = BridgeHttpClient(self._session, self.bridge_url, token=self._token)
        return self._http

    async def connect(self) -> None:
        """Check bridge health.

        Raises:
            GatewayClientError: If the bridge is unreachable or not UP.
        """
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            data = await self._client().health()
            if data.get("status") != "UP":
                raise GatewayConnectionError(
                    f"Bridge status abnormal: {data.get('status')!r}"
                )
        except GatewayClientError as err:
            _LOGGER.warning("[%s] Bridge connect failed: %s", self.bridge_url, err)
            self._set_status(ConnectionStatus.ERROR)
            raise
        self._set_status(ConnectionStatus.CONNECTED)
        _LOGGER.info("[%s] Connected to bridge", self.bridge_url)

    async def send_message(self, text: str) -> bool:
        """Send a message and deliver the reply to subscribers.

        Returns:
            True if a non-empty reply was delivered, False otherwise
        """
        if not self.is_connected:
            _LOGGER.warning("[%s] Cannot send message: not connected", self.bridge_url)
            return False

        task = asyncio.create_task(
            self._client().chat_completion(text, model=self._model)
        )
        self._inflight = task
        try:
            content = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                _LOGGER.info("[%s] Request aborted", self.bridge_url)
                return False
            raise
        except GatewayClientError as err:
            _LOGGER.error("[%s] Failed to send message: %s", self.bridge_url, err)
            self._message_callbacks.notify(self._decoder.error_chunk(str(err)))
            return False
        finally:
            if self._inflight is task:
                self._inflight = None

        chunks = self._decoder.reply_chunks(content)
        for chunk in chunks:
            self._message_callbacks.notify(chunk)
        return bool(chunks)

    def abort(self) -> None:
        """Cancel the in-flight request, if any."""
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None

    async def disconnect(self) -> None:
        """Abort pending work and release an owned HTTP session."""
        self.abort()
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._http = None
        self._set_status(ConnectionStatus.DISCONNECTED)

    def _set_status(self, status: ConnectionStatus) -> None:
        if self._status is status:
            return
        _LOGGER.debug(
            "[%s] State: %s → %s", self.bridge_url, self._status.value, status.value
        )
        self._status = status
        self._status_callbacks.notify(status)
