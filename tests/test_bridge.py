"""Tests for BridgeConnector."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from avatar_gateway import BridgeConnector, ChunkType, ConnectionStatus
from avatar_gateway.errors import GatewayConnectionError, GatewayResponseError

from .conftest import create_mock_response

BRIDGE_URL = "http://127.0.0.1:12394"


def _reply(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


async def _connected(mock_session: MagicMock) -> BridgeConnector:
    connector = BridgeConnector(BRIDGE_URL, session=mock_session)
    mock_session.get.return_value = create_mock_response(
        status=200, json_data={"status": "UP"}
    )
    await connector.connect()
    return connector


class TestConnect:
    async def test_connect_success(self, mock_session: MagicMock) -> None:
        connector = BridgeConnector(BRIDGE_URL, session=mock_session)
        statuses = []
        connector.on_status_change(statuses.append)
        mock_session.get.return_value = create_mock_response(
            status=200, json_data={"status": "UP"}
        )

        await connector.connect()

        assert statuses == [
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
        ]
        assert connector.is_connected

    async def test_connect_status_not_up(self, mock_session: MagicMock) -> None:
        connector = BridgeConnector(BRIDGE_URL, session=mock_session)
        mock_session.get.return_value = create_mock_response(
            status=200, json_data={"status": "DOWN"}
        )

        with pytest.raises(GatewayConnectionError, match="Bridge status abnormal"):
            await connector.connect()
        assert connector.get_status() is ConnectionStatus.ERROR

    async def test_connect_unavailable(self, mock_session: MagicMock) -> None:
        connector = BridgeConnector(BRIDGE_URL, session=mock_session)
        mock_session.get.return_value = create_mock_response(status=502)

        with pytest.raises(GatewayResponseError):
            await connector.connect()
        assert connector.status is ConnectionStatus.ERROR


class TestSendMessage:
    async def test_not_connected(self, mock_session: MagicMock) -> None:
        connector = BridgeConnector(BRIDGE_URL, session=mock_session)

        assert await connector.send_message("hello") is False
        mock_session.post.assert_not_called()

    async def test_reply_delivered_as_text_then_end(self, mock_session: MagicMock) -> None:
        connector = await _connected(mock_session)
        chunks = []
        connector.on_message(chunks.append)
        mock_session.post.return_value = create_mock_response(
            status=200, json_data=_reply("hi there")
        )

        assert await connector.send_message("hello") is True
        assert [(c.type, c.content) for c in chunks] == [
            (ChunkType.TEXT, "hi there"),
            (ChunkType.END, "hi there"),
        ]

    async def test_empty_reply(self, mock_session: MagicMock) -> None:
        connector = await _connected(mock_session)
        chunks = []
        connector.on_message(chunks.append)
        mock_session.post.return_value = create_mock_response(
            status=200, json_data=_reply("")
        )

        assert await connector.send_message("hello") is False
        assert chunks == []

    async def test_failure_emits_error_chunk(self, mock_session: MagicMock) -> None:
        connector = await _connected(mock_session)
        chunks = []
        connector.on_message(chunks.append)
        mock_session.post.return_value = create_mock_response(status=500)

        assert await connector.send_message("hello") is False
        assert [(c.type, c.content) for c in chunks] == [
            (ChunkType.ERROR, "Request failed: 500")
        ]

    async def test_abort(self, mock_session: MagicMock) -> None:
        connector = await _connected(mock_session)
        chunks = []
        connector.on_message(chunks.append)
        release = asyncio.Event()

        async def slow_json():
            await release.wait()
            return _reply("too late")

        response = create_mock_response(status=200)
        response.json.side_effect = slow_json
        mock_session.post.return_value = response

        task = asyncio.create_task(connector.send_message("hello"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        connector.abort()

        assert await task is False
        assert chunks == []


class TestDisconnect:
    async def test_disconnect_keeps_borrowed_session(self, mock_session: MagicMock) -> None:
        connector = await _connected(mock_session)

        await connector.disconnect()

        assert connector.status is ConnectionStatus.DISCONNECTED
        mock_session.close.assert_not_called()
