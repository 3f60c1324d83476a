"""High-level connector for the remote agent gateway.

This module provides the object the rest of the application talks to. It
handles:
- Opening the WebSocket and running the challenge/response handshake
- Correlating requests with their acknowledgments
- Decoding the event stream into message chunks for subscribers
- Reconnecting after abnormal closes
- Owning the externally visible connection status

Each connector instance owns its own state machine; nothing is shared
between instances.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from .config import ConnectorConfig
from .correlator import RequestCorrelator
from .decoder import EventDecoder
from .errors import (
    GatewayClientError,
    GatewayConnectionError,
    GatewayNotConnectedError,
    GatewayTimeout,
)
from .handshake import HandshakeCoordinator
from .identity import (
    DeviceIdentity,
    IdentityStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)
from .listeners import CallbackRegistry
from .models import ConnectionStatus, MessageChunk
from .protocol import (
    EVENT_CHALLENGE,
    FRAME_EVENT,
    FRAME_RESPONSE,
    METHOD_AGENT,
    ClientInfo,
    build_agent_params,
    parse_frame,
)
from .reconnect import ReconnectionManager, ReconnectState
from .ws_client import GatewayWsClient, GatewayWsMessage, GatewayWsMessageType

_LOGGER = logging.getLogger(__name__)

CLOSE_NORMAL = 1000


class GatewayConnector:
    """Connector facade for the agent gateway.

    Usage:
        connector = GatewayConnector(ConnectorConfig(gateway_url="ws://host:18789/ws"))
        connector.on_status_change(my_status_handler)
        connector.on_message(my_chunk_handler)
        await connector.connect()
        await connector.send_message("hello")
        await connector.disconnect()
    """

    def __init__(
        self,
        config: ConnectorConfig | None = None,
        *,
        store: KeyValueStore | None = None,
    ) -> None:
        """Initialize connector.

        Args:
            config: Connector configuration (defaults apply when omitted)
            store: Key-value store for the device identity. Defaults to a
                JSON file at ``config.identity_path`` or, without one, an
                in-memory store.
        """
        self._config = config or ConnectorConfig()

        if store is None:
            if self._config.identity_path:
                store = JsonFileKeyValueStore(self._config.identity_path)
            else:
                store = MemoryKeyValueStore()
        self._identity = IdentityStore(store)
        self._decoder = EventDecoder()

        # Connection state
        self._status = ConnectionStatus.DISCONNECTED
        self._ever_connected = False
        self._protocol_version: int | None = None
        self._connect_task: asyncio.Task[None] | None = None

        # Current session
        self._ws: GatewayWsClient | None = None
        self._correlator: RequestCorrelator | None = None
        self._handshake: HandshakeCoordinator | None = None
        self._listen_task: asyncio.Task[None] | None = None

        # Callbacks
        self._message_callbacks: CallbackRegistry[MessageChunk] = CallbackRegistry(
            "Message"
        )
        self._status_callbacks: CallbackRegistry[ConnectionStatus] = CallbackRegistry(
            "Status"
        )

        self._reconnect = ReconnectionManager(
            self._reconnect_now,
            interval=self._config.reconnect_interval,
            max_attempts=self._config.max_reconnect_attempts,
            on_exhausted=self._handle_reconnect_exhausted,
            name=self._config.gateway_url,
        )

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect and authenticate to the gateway.

        Returns immediately when already connected. Concurrent callers share
        a single connection attempt.

        Raises:
            GatewayHandshakeError: Gateway rejected the handshake.
            GatewayTimeout: Socket open or handshake timed out.
            GatewayConnectionError: Transport failure, or disconnect() was
                called before the attempt finished.
        """
        if self.is_connected:
            return

        if self._reconnect.state is ReconnectState.SCHEDULED:
            self._reconnect.cancel()

        self._set_status(ConnectionStatus.CONNECTING)
        task = self._ensure_connect_task()
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                raise GatewayConnectionError(
                    "Connection attempt cancelled by disconnect()"
                ) from None
            raise

    async def disconnect(self) -> None:
        """Close the session and stop reconnecting. Safe to call from any state."""
        if self._status is not ConnectionStatus.DISCONNECTED:
            _LOGGER.info("[%s] Disconnecting", self.name)

        self._reconnect.cancel()

        task = self._connect_task
        self._connect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
            except GatewayClientError as err:
                _LOGGER.debug("[%s] Pending connect ended with: %s", self.name, err)

        await self._teardown_session(reason="Client disconnect")
        self._decoder.reset()
        self._set_status(ConnectionStatus.DISCONNECTED)

    @property
    def name(self) -> str:
        return self._config.gateway_url

    @property
    def config(self) -> ConnectorConfig:
        return self._config

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def get_status(self) -> ConnectionStatus:
        """Get current connection status."""
        return self._status

    @property
    def is_connected(self) -> bool:
        """Check if the current session completed its handshake."""
        return self._status is ConnectionStatus.CONNECTED

    @property
    def protocol_version(self) -> int | None:
        return self._protocol_version

    @property
    def device_identity(self) -> DeviceIdentity:
        return self._identity.load()

    # -------------------------------------------------------------------------
    # Public API: Configuration
    # -------------------------------------------------------------------------

    def set_token(self, token: str) -> None:
        """Set the static gateway token used by the next connect()."""
        self._config = self._config.with_updates(token=token)

    def update_config(self, **changes: Any) -> None:
        """Update configuration for the next connect().

        An open session keeps the parameters it was opened with. Reconnect
        interval and ceiling apply from the next scheduled retry.
        ``identity_path`` is only read at construction.
        """
        self._config = self._config.with_updates(**changes)
        self._reconnect.configure(
            interval=self._config.reconnect_interval,
            max_attempts=self._config.max_reconnect_attempts,
        )

    # -------------------------------------------------------------------------
    # Public API: Callbacks
    # -------------------------------------------------------------------------

    def on_message(self, callback: Callable[[MessageChunk], None]) -> Callable[[], None]:
        """Register callback for decoded message chunks.

        Returns:
            Function that unsubscribes the callback.
        """
        return self._message_callbacks.add(callback)

    def on_status_change(
        self, callback: Callable[[ConnectionStatus], None]
    ) -> Callable[[], None]:
        """Register callback for connection status changes.

        The callback is invoked once right away with the current status.

        Returns:
            Function that unsubscribes the callback.
        """
        unsubscribe = self._status_callbacks.add(callback)
        self._status_callbacks.call(callback, self._status)
        return unsubscribe

    # -------------------------------------------------------------------------
    # Public API: Requests
    # -------------------------------------------------------------------------

    async def send_message(
        self,
        text: str,
        *,
        session_key: str | None = None,
        thinking_level: str | None = None,
        model: str | None = None,
    ) -> bool:
        """Send a message to the agent.

        The reply streams back later through on_message subscribers.

        Returns:
            True once the gateway accepted the message, False otherwise

        Raises:
            ValueError: If ``thinking_level`` is not a known level.
        """
        params = build_agent_params(
            text,
            session_key=session_key,
            thinking_level=thinking_level,
            model=model,
        )
        correlator = self._correlator
        if not self.is_connected or correlator is None:
            _LOGGER.warning("[%s] Cannot send message: not connected", self.name)
            return False

        self._decoder.reset()
        try:
            response = await correlator.send(METHOD_AGENT, params)
        except GatewayClientError as err:
            _LOGGER.error("[%s] Failed to send message: %s", self.name, err)
            return False

        if isinstance(response, dict) and response.get("status") == "accepted":
            _LOGGER.info(
                "[%s] Message accepted, runId=%s", self.name, response.get("runId")
            )
        else:
            _LOGGER.debug("[%s] Agent response: %s", self.name, response)
        return True

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send an arbitrary gateway request and return its payload.

        Raises:
            GatewayNotConnectedError: If no authenticated session is open.
        """
        correlator = self._correlator
        if not self.is_connected or correlator is None:
            raise GatewayNotConnectedError("Not connected")
        return await correlator.send(method, params)

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        """Update connection status and notify callbacks."""
        if self._status is status:
            return
        _LOGGER.debug("[%s] State: %s → %s", self.name, self._status.value, status.value)
        self._status = status
        self._status_callbacks.notify(status)

    def _ensure_connect_task(self) -> asyncio.Task[None]:
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self._open_session())
        return self._connect_task

    async def _reconnect_now(self) -> None:
        await asyncio.shield(self._ensure_connect_task())

    def _handle_reconnect_exhausted(self) -> None:
        self._set_status(
            ConnectionStatus.ERROR
            if self._ever_connected
            else ConnectionStatus.DISCONNECTED
        )

    async def _open_session(self) -> None:
        """Open a transport session and run the handshake on it."""
        config = self._config
        self._set_status(ConnectionStatus.CONNECTING)

        # Only one session may be open; finish tearing down the old one first.
        await self._teardown_session(reason="Reconnecting")

        _LOGGER.info(
            "[%s] Connecting (attempt #%d)", self.name, self._reconnect.attempts + 1
        )
        ws = GatewayWsClient()
        try:
            await ws.connect(
                config.gateway_url,
                ping_interval=config.ping_interval,
                timeout=config.connect_timeout,
                close_timeout=config.close_timeout,
            )
        except GatewayClientError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self.name, err)
            self._set_status(ConnectionStatus.ERROR)
            raise

        device_id = self._identity.device_id
        correlator = RequestCorrelator(
            ws.send_json, timeout=config.request_timeout, name=self.name
        )
        handshake = HandshakeCoordinator(
            correlator,
            self._identity,
            client=ClientInfo(
                id=config.client_id,
                version=config.client_version,
                mode=config.client_mode,
                instance_id=f"{config.client_mode}-{device_id}",
            ),
            token=config.token or None,
            role=config.role,
            scopes=config.scopes,
            locale=config.locale,
            name=self.name,
        )
        self._ws = ws
        self._correlator = correlator
        self._handshake = handshake

        handshake.start()
        listen_task = asyncio.create_task(self._listen(ws, handshake, correlator))
        self._listen_task = listen_task

        failure: GatewayClientError | None = None
        try:
            hello = await asyncio.wait_for(
                handshake.wait(), timeout=config.handshake_timeout
            )
        except TimeoutError:
            failure = GatewayTimeout("Handshake timed out")
        except GatewayClientError as err:
            failure = err
        else:
            # The socket may close between hello-ok and this point.
            if ws is not self._ws or listen_task.done():
                failure = GatewayConnectionError("Connection closed during handshake")

        if failure is not None:
            await self._teardown_session(reason="Handshake failed")
            self._set_status(ConnectionStatus.ERROR)
            raise failure

        self._protocol_version = hello.protocol
        self._ever_connected = True
        self._reconnect.mark_ready()
        self._set_status(ConnectionStatus.CONNECTED)
        _LOGGER.info("[%s] Connected (protocol v%d)", self.name, hello.protocol)

    async def _teardown_session(self, *, reason: str) -> None:
        """Close the current session, if any, and wait for its listener."""
        ws = self._ws
        listen_task = self._listen_task
        handshake = self._handshake
        correlator = self._correlator

        self._ws = None
        self._listen_task = None
        self._handshake = None
        self._correlator = None
        self._protocol_version = None

        if handshake is not None:
            handshake.cancel()
        if correlator is not None:
            correlator.abandon_all()

        if (
            listen_task is not None
            and not listen_task.done()
            and listen_task is not asyncio.current_task()
        ):
            listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listen_task

        if ws is not None:
            try:
                await asyncio.wait_for(ws.close(CLOSE_NORMAL, reason), timeout=2.0)
            except TimeoutError:
                _LOGGER.warning("[%s] WebSocket close timed out", self.name)

    def _handle_session_closed(
        self,
        ws: GatewayWsClient,
        handshake: HandshakeCoordinator,
        correlator: RequestCorrelator,
    ) -> None:
        """React to a close that did not come from disconnect()."""
        if ws is not self._ws:
            return

        if self._status is not ConnectionStatus.CONNECTED:
            # The pending connect() reports the failure and tears down.
            handshake.fail(
                GatewayConnectionError("Connection closed before handshake completed")
            )
            return

        correlator.abandon_all()
        self._ws = None
        self._listen_task = None
        self._handshake = None
        self._correlator = None
        self._protocol_version = None

        self._set_status(ConnectionStatus.DISCONNECTED)
        self._reconnect.notify_abnormal_close()

    # -------------------------------------------------------------------------
    # Internal: Message Listener
    # -------------------------------------------------------------------------

    async def _listen(
        self,
        ws: GatewayWsClient,
        handshake: HandshakeCoordinator,
        correlator: RequestCorrelator,
    ) -> None:
        """Listen for frames from the gateway."""
        message_count = 0
        session_lost = False

        try:
            async for msg in ws:
                if msg.type is GatewayWsMessageType.TEXT:
                    message_count += 1
                    self._dispatch(msg, handshake, correlator)

                elif msg.type is GatewayWsMessageType.CLOSED:
                    _LOGGER.info(
                        "[%s] WebSocket closed by gateway (code=%s, reason=%s)",
                        self.name,
                        msg.close_code,
                        msg.close_reason or "",
                    )
                    session_lost = True
                    break

                elif msg.type is GatewayWsMessageType.ERROR:
                    _LOGGER.error("[%s] WebSocket error", self.name)
                    session_lost = True
                    break
            else:
                session_lost = True

        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)", self.name, message_count
            )
            raise
        except GatewayClientError as err:
            _LOGGER.warning("[%s] Client error: %s", self.name, err)
            session_lost = True
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected error: %s", self.name, err)
            session_lost = True
        finally:
            if session_lost:
                self._handle_session_closed(ws, handshake, correlator)

    def _dispatch(
        self,
        msg: GatewayWsMessage,
        handshake: HandshakeCoordinator,
        correlator: RequestCorrelator,
    ) -> None:
        """Route one inbound frame; malformed frames are logged and dropped."""
        try:
            frame = parse_frame(msg.data)
        except ValueError as err:
            _LOGGER.warning("[%s] Dropping malformed frame: %s", self.name, err)
            return

        frame_type = frame.get("type")
        if frame_type == FRAME_RESPONSE:
            correlator.handle_response(frame)
        elif frame_type == FRAME_EVENT:
            if frame.get("event") == EVENT_CHALLENGE:
                handshake.handle_challenge(frame.get("payload"))
                return
            for chunk in self._decoder.decode(frame):
                self._message_callbacks.notify(chunk)
        else:
            _LOGGER.debug("[%s] Unknown frame type: %s", self.name, frame_type)
