"""Tests for gateway protocol helpers."""

from __future__ import annotations

import json

import pytest

from avatar_gateway.protocol import (
    PROTOCOL_VERSION,
    ClientInfo,
    build_agent_params,
    build_connect_params,
    build_request,
    error_message,
    parse_frame,
    parse_hello_ok,
)

CLIENT = ClientInfo(
    id="openclaw-avatar",
    version="1.0.0",
    mode="avatar",
    instance_id="avatar-abc",
    platform="darwin",
)


class TestBuildRequest:
    def test_shape(self):
        frame = build_request("agent", {"message": "hi"}, request_id="r1")
        assert frame == {
            "type": "req",
            "id": "r1",
            "method": "agent",
            "params": {"message": "hi"},
        }

    def test_generated_id_and_empty_params(self):
        frame = build_request("health")
        assert frame["id"]
        assert frame["params"] == {}
        assert build_request("health")["id"] != frame["id"]


class TestConnectParams:
    def test_full(self):
        params = build_connect_params(
            client=CLIENT,
            nonce="n1",
            token="t",
            device_token="d",
            locale="zh-CN",
        )
        assert params == {
            "minProtocol": PROTOCOL_VERSION,
            "maxProtocol": PROTOCOL_VERSION,
            "client": {
                "id": "openclaw-avatar",
                "version": "1.0.0",
                "platform": "darwin",
                "mode": "avatar",
                "instanceId": "avatar-abc",
            },
            "role": "viewer",
            "scopes": ["chat", "events"],
            "caps": ["streaming"],
            "auth": {"token": "t", "deviceToken": "d"},
            "locale": "zh-CN",
            "nonce": "n1",
        }

    def test_auth_omitted_without_credentials(self):
        params = build_connect_params(client=CLIENT, nonce="n1", token="")
        assert "auth" not in params
        assert "locale" not in params

    def test_only_device_token(self):
        params = build_connect_params(client=CLIENT, nonce=None, device_token="d")
        assert params["auth"] == {"deviceToken": "d"}
        assert "nonce" not in params


class TestParseHelloOk:
    def test_with_device_token(self):
        hello = parse_hello_ok(
            {"type": "hello-ok", "protocol": 3, "auth": {"deviceToken": "dt"}}
        )
        assert hello.protocol == 3
        assert hello.device_token == "dt"

    def test_defaults(self):
        hello = parse_hello_ok({"type": "hello-ok"})
        assert hello.protocol == PROTOCOL_VERSION
        assert hello.device_token is None

    @pytest.mark.parametrize(
        "payload",
        [None, "hello-ok", {"type": "other"}, {"type": "hello-ok", "protocol": "3"}],
    )
    def test_invalid(self, payload):
        with pytest.raises(ValueError):
            parse_hello_ok(payload)


class TestAgentParams:
    def test_optional_fields_omitted(self):
        params = build_agent_params("hello", idempotency_key="k1")
        assert params == {"message": "hello", "idempotencyKey": "k1"}

    def test_all_fields(self):
        params = build_agent_params(
            "hello",
            session_key="main",
            thinking_level="low",
            model="claude",
        )
        assert params["sessionKey"] == "main"
        assert params["thinkingLevel"] == "low"
        assert params["model"] == "claude"
        assert params["idempotencyKey"]

    def test_invalid_thinking_level(self):
        with pytest.raises(ValueError, match="thinking_level"):
            build_agent_params("hello", thinking_level="extreme")


class TestParseFrame:
    def test_object(self):
        assert parse_frame(json.dumps({"type": "event"})) == {"type": "event"}

    @pytest.mark.parametrize("data", ["[1]", '"text"', "{bad", b"{}", None])
    def test_rejected(self, data):
        with pytest.raises(ValueError):
            parse_frame(data)


class TestErrorMessage:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            ({"message": "boom"}, "boom"),
            ({"code": "X"}, "fallback"),
            ("plain", "plain"),
            ("", "fallback"),
            (None, "fallback"),
        ],
    )
    def test_extract(self, error, expected):
        assert error_message(error, "fallback") == expected
