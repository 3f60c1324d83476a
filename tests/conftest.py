"""Pytest configuration and fixtures for avatar_gateway tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from avatar_gateway import ConnectorConfig, GatewayConnector, MemoryKeyValueStore
from avatar_gateway.errors import GatewayConnectionError
from avatar_gateway.ws_client import GatewayWsMessage, GatewayWsMessageType


class FakeSocket:
    """Stand-in for GatewayWsClient driven by a FakeGateway."""

    def __init__(self, gateway: FakeGateway) -> None:
        self.gateway = gateway
        self.sent: list[dict[str, Any]] = []
        self.url: str | None = None
        self.closed = False
        self.close_code: int | None = None
        self._inbound: asyncio.Queue[GatewayWsMessage] = asyncio.Queue()

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.url = url
        if self.gateway.fail_open:
            raise GatewayConnectionError("WebSocket connection failed")
        if self.gateway.send_challenge:
            self.push_event("connect.challenge", {"nonce": f"n{len(self.gateway.sockets)}"})

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.closed:
            raise GatewayConnectionError("WebSocket is closed")
        self.sent.append(payload)
        self.gateway.handle_request(self, payload)

    def push(self, frame: dict[str, Any] | str) -> None:
        data = frame if isinstance(frame, str) else json.dumps(frame)
        self._inbound.put_nowait(GatewayWsMessage(GatewayWsMessageType.TEXT, data))

    def push_event(self, event: str, payload: Any) -> None:
        self.push({"type": "event", "event": event, "payload": payload})

    def respond(self, request_id: str, *, payload: Any = None, error: str | None = None) -> None:
        frame: dict[str, Any] = {"type": "res", "id": request_id, "ok": error is None}
        if error is None:
            frame["payload"] = payload
        else:
            frame["error"] = {"message": error}
        self.push(frame)

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Simulate the gateway going away."""
        self._inbound.put_nowait(
            GatewayWsMessage(
                GatewayWsMessageType.CLOSED, close_code=code, close_reason=reason
            )
        )

    def requests(self, method: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("method") == method]

    def __aiter__(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            msg = await self._inbound.get()
            yield msg
            if msg.type is not GatewayWsMessageType.TEXT:
                return


class FakeGateway:
    """Scripted gateway: answers connect and agent requests."""

    def __init__(self) -> None:
        self.sockets: list[FakeSocket] = []
        self.fail_open = False
        self.send_challenge = True
        self.connect_error: str | None = None
        self.device_token: str | None = "device-token-1"
        self.protocol = 3
        self.answer_agent = True
        self.agent_error: str | None = None
        self.drop_after_connect: int | None = None
        self._tasks: list[asyncio.Task[None]] = []

    def create_socket(self) -> FakeSocket:
        sock = FakeSocket(self)
        self.sockets.append(sock)
        return sock

    @property
    def current(self) -> FakeSocket:
        return self.sockets[-1]

    @property
    def connect_requests(self) -> list[dict[str, Any]]:
        return [frame for sock in self.sockets for frame in sock.requests("connect")]

    async def _drop_later(self, sock: FakeSocket, spins: int) -> None:
        for _ in range(spins):
            await asyncio.sleep(0)
        sock.drop()

    def handle_request(self, sock: FakeSocket, frame: dict[str, Any]) -> None:
        method = frame.get("method")
        if method == "connect":
            if self.connect_error:
                sock.respond(frame["id"], error=self.connect_error)
                return
            payload: dict[str, Any] = {"type": "hello-ok", "protocol": self.protocol}
            if self.device_token:
                payload["auth"] = {"deviceToken": self.device_token}
            sock.respond(frame["id"], payload=payload)
            if self.drop_after_connect is not None:
                self._tasks.append(
                    asyncio.create_task(self._drop_later(sock, self.drop_after_connect))
                )
        elif method == "agent" and self.answer_agent:
            if self.agent_error:
                sock.respond(frame["id"], error=self.agent_error)
            else:
                sock.respond(frame["id"], payload={"status": "accepted", "runId": "run-1"})


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def gateway() -> Iterator[FakeGateway]:
    """Patch the connector's websocket client with a scripted gateway."""
    fake = FakeGateway()
    with patch(
        "avatar_gateway.connector.GatewayWsClient", side_effect=fake.create_socket
    ):
        yield fake


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def make_connector(store: MemoryKeyValueStore) -> Callable[..., GatewayConnector]:
    """Build connectors with fast reconnect timing."""

    def _make(**overrides: Any) -> GatewayConnector:
        options: dict[str, Any] = {
            "gateway_url": "ws://gateway.test:18789/ws",
            "token": "static-token",
            "reconnect_interval": 0.01,
            "max_reconnect_attempts": 3,
            "handshake_timeout": 1.0,
        }
        options.update(overrides)
        return GatewayConnector(ConnectorConfig(**options), store=store)

    return _make


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    text_data: str | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data to return from json() call
        text_data: Data to return from text() call

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status

    if json_data is not None:
        response.json.return_value = json_data
    if text_data is not None:
        response.text.return_value = text_data

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response
