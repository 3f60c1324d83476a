"""Protocol helpers for agent gateway frames.

Frames are JSON objects of three kinds:

- request  ``{"type": "req", "id", "method", "params"}`` (client to gateway)
- response ``{"type": "res", "id", "ok", "payload"?, "error"?}``
- event    ``{"type": "event", "event", "payload"}``

Unknown optional fields MUST be ignored by the recipient.
"""

from __future__ import annotations

import json
import sys
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, get_args

PROTOCOL_VERSION = 3

FRAME_REQUEST = "req"
FRAME_RESPONSE = "res"
FRAME_EVENT = "event"

EVENT_CHALLENGE = "connect.challenge"
EVENT_AGENT = "agent"
EVENT_CHAT = "chat"
EVENT_TICK = "tick"
EVENT_PRESENCE = "presence"

METHOD_CONNECT = "connect"
METHOD_AGENT = "agent"

HELLO_OK = "hello-ok"

DEFAULT_CAPS: tuple[str, ...] = ("streaming",)

ThinkingLevel = Literal["off", "minimal", "low", "medium", "high"]
THINKING_LEVELS: tuple[str, ...] = get_args(ThinkingLevel)


def generate_request_id() -> str:
    """Return a collision-resistant request id."""
    return str(uuid.uuid4())


def build_request(
    method: str,
    params: dict[str, Any] | None = None,
    *,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Build a request frame.

    Args:
        method: Gateway method name (e.g., "connect", "agent").
        params: JSON-serializable parameters.
        request_id: Optional caller-supplied id. Generated when omitted.
    """
    return {
        "type": FRAME_REQUEST,
        "id": request_id or generate_request_id(),
        "method": method,
        "params": params or {},
    }


@dataclass(frozen=True)
class ClientInfo:
    """Client description announced during the handshake."""

    id: str
    version: str
    mode: str
    instance_id: str
    platform: str = sys.platform

    def as_params(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "platform": self.platform,
            "mode": self.mode,
            "instanceId": self.instance_id,
        }


def build_connect_params(
    *,
    client: ClientInfo,
    nonce: str | None,
    token: str | None = None,
    device_token: str | None = None,
    role: str = "viewer",
    scopes: Sequence[str] = ("chat", "events"),
    caps: Sequence[str] = DEFAULT_CAPS,
    locale: str | None = None,
) -> dict[str, Any]:
    """Build params for the ``connect`` request answering a challenge.

    ``auth`` is only present when a static token or a device token is
    available, and each key only when set.
    """
    params: dict[str, Any] = {
        "minProtocol": PROTOCOL_VERSION,
        "maxProtocol": PROTOCOL_VERSION,
        "client": client.as_params(),
        "role": role,
        "scopes": list(scopes),
        "caps": list(caps),
    }
    auth: dict[str, str] = {}
    if token:
        auth["token"] = token
    if device_token:
        auth["deviceToken"] = device_token
    if auth:
        params["auth"] = auth
    if locale:
        params["locale"] = locale
    if nonce is not None:
        params["nonce"] = nonce
    return params


@dataclass(frozen=True)
class HelloOk:
    """Successful handshake result."""

    protocol: int
    device_token: str | None = None


def parse_hello_ok(payload: Any) -> HelloOk:
    """Parse the ``connect`` success payload.

    Raises:
        ValueError: If the payload is not a hello-ok message.
    """
    if not isinstance(payload, dict):
        raise ValueError("connect response payload must be an object")
    if payload.get("type") != HELLO_OK:
        raise ValueError(f"Unexpected connect response type: {payload.get('type')!r}")

    protocol = payload.get("protocol", PROTOCOL_VERSION)
    if isinstance(protocol, bool) or not isinstance(protocol, int):
        raise ValueError(f"Invalid protocol version: {protocol!r}")

    auth = payload.get("auth")
    device_token = auth.get("deviceToken") if isinstance(auth, dict) else None
    if not isinstance(device_token, str) or not device_token:
        device_token = None

    return HelloOk(protocol=protocol, device_token=device_token)


def parse_frame(data: Any) -> dict[str, Any]:
    """Decode a text payload into a frame object.

    Raises:
        ValueError: If the payload is not text holding a JSON object.
    """
    if not isinstance(data, str):
        raise ValueError("Frame payload is not text")
    frame = json.loads(data)
    if not isinstance(frame, dict):
        raise ValueError("Frame is not a JSON object")
    return frame


def build_agent_params(
    message: str,
    *,
    session_key: str | None = None,
    thinking_level: str | None = None,
    model: str | None = None,
    idempotency_key: str | None = None,
) -> dict[str, Any]:
    """Build params for the ``agent`` request.

    Raises:
        ValueError: If ``thinking_level`` is not a known level.
    """
    if thinking_level is not None and thinking_level not in THINKING_LEVELS:
        raise ValueError(
            f"thinking_level must be one of {', '.join(THINKING_LEVELS)}, "
            f"got {thinking_level!r}"
        )
    params: dict[str, Any] = {
        "message": message,
        "idempotencyKey": idempotency_key or generate_request_id(),
    }
    if session_key is not None:
        params["sessionKey"] = session_key
    if thinking_level is not None:
        params["thinkingLevel"] = thinking_level
    if model is not None:
        params["model"] = model
    return params


def error_message(error: Any, default: str) -> str:
    """Extract a human readable message from an ``error`` field."""
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
        return default
    if isinstance(error, str) and error:
        return error
    return default
