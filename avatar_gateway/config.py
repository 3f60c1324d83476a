"""Connector configuration.

Configuration is plain data: a frozen dataclass validated on construction,
loadable from a mapping or a YAML file. Changes produce a new instance so a
running session keeps the values it was opened with.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_GATEWAY_URL = "ws://localhost:18789/ws"
DEFAULT_CLIENT_ID = "openclaw-avatar"
DEFAULT_CLIENT_VERSION = "1.0.0"


@dataclass(frozen=True)
class ConnectorConfig:
    """Parameters for a gateway connector.

    Attributes:
        gateway_url: ws:// or wss:// endpoint of the gateway.
        token: Static bearer token sent in the connect handshake.
        reconnect_interval: Fixed delay between reconnect attempts (seconds).
        max_reconnect_attempts: Retry ceiling after an abnormal close.
        request_timeout: Per-request response budget (seconds).
        connect_timeout: Budget for opening the WebSocket (seconds).
        handshake_timeout: Budget for challenge plus connect result (seconds).
        ping_interval: WebSocket keepalive ping interval (seconds).
        close_timeout: Budget for the WebSocket closing handshake (seconds).
        client_id: Client identifier announced in the handshake.
        client_version: Client version announced in the handshake.
        client_mode: Client mode announced in the handshake.
        role: Role requested in the handshake.
        scopes: Permission scopes requested in the handshake.
        locale: Locale announced in the handshake.
        identity_path: JSON file used to persist the device identity.
            ``None`` keeps the identity in memory only.
    """

    gateway_url: str = DEFAULT_GATEWAY_URL
    token: str = ""
    reconnect_interval: float = 3.0
    max_reconnect_attempts: int = 5
    request_timeout: float = 30.0
    connect_timeout: float = 15.0
    handshake_timeout: float = 15.0
    ping_interval: int | None = 20
    close_timeout: float = 5.0
    client_id: str = DEFAULT_CLIENT_ID
    client_version: str = DEFAULT_CLIENT_VERSION
    client_mode: str = "avatar"
    role: str = "viewer"
    scopes: tuple[str, ...] = field(default=("chat", "events"))
    locale: str = "zh-CN"
    identity_path: str | None = None

    def __post_init__(self) -> None:
        if not self.gateway_url.startswith(("ws://", "wss://")):
            raise ValueError(
                f"gateway_url must be a ws:// or wss:// URL, got {self.gateway_url!r}"
            )
        for name in (
            "reconnect_interval",
            "request_timeout",
            "connect_timeout",
            "handshake_timeout",
            "close_timeout",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if isinstance(self.max_reconnect_attempts, bool) or not isinstance(
            self.max_reconnect_attempts, int
        ):
            raise ValueError("max_reconnect_attempts must be an integer")
        if self.max_reconnect_attempts < 0:
            raise ValueError("max_reconnect_attempts must not be negative")
        if not isinstance(self.scopes, tuple):
            object.__setattr__(self, "scopes", tuple(self.scopes))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ConnectorConfig:
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown connector config keys: {', '.join(unknown)}")
        return cls(**dict(data))

    def with_updates(self, **changes: Any) -> ConnectorConfig:
        """Return a validated copy with ``changes`` applied.

        ``None`` values are ignored so optional keyword arguments can be
        forwarded directly.
        """
        applied = {k: v for k, v in changes.items() if v is not None}
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(applied) - known)
        if unknown:
            raise ValueError(f"Unknown connector config keys: {', '.join(unknown)}")
        return dataclasses.replace(self, **applied)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict for empty files."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def load_config(path: str | Path) -> ConnectorConfig:
    """Load connector configuration from a YAML file.

    The file may either hold the options at the top level or nest them
    under a ``gateway`` key.
    """
    data = _load_yaml(Path(path))
    section = data.get("gateway", data)
    if not isinstance(section, dict):
        raise ValueError("'gateway' section must be a mapping")
    return ConnectorConfig.from_mapping(section)
