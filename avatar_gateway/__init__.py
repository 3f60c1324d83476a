"""Session layer between the avatar app and the remote agent gateway."""

__version__ = "0.1.0"

from .bridge import BridgeConnector
from .config import ConnectorConfig, load_config
from .connector import GatewayConnector
from .correlator import PendingRequest, RequestCorrelator
from .decoder import EventDecoder
from .errors import (
    GatewayClientError,
    GatewayConnectionError,
    GatewayHandshakeError,
    GatewayNotConnectedError,
    GatewayRequestAbandoned,
    GatewayResponseError,
    GatewayTimeout,
)
from .handshake import HandshakeCoordinator, HandshakeState
from .http import BridgeHttpClient
from .identity import (
    DeviceIdentity,
    IdentityStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)
from .models import ChunkType, ConnectionStatus, MessageChunk
from .protocol import PROTOCOL_VERSION, build_request
from .reconnect import ReconnectionManager, ReconnectState
from .ws import connect_websocket
from .ws_client import GatewayWsClient, GatewayWsMessage, GatewayWsMessageType

__all__ = [
    "PROTOCOL_VERSION",
    "BridgeConnector",
    "BridgeHttpClient",
    "ChunkType",
    "ConnectionStatus",
    "ConnectorConfig",
    "DeviceIdentity",
    "EventDecoder",
    "GatewayClientError",
    "GatewayConnectionError",
    "GatewayConnector",
    "GatewayHandshakeError",
    "GatewayNotConnectedError",
    "GatewayRequestAbandoned",
    "GatewayResponseError",
    "GatewayTimeout",
    "GatewayWsClient",
    "GatewayWsMessage",
    "GatewayWsMessageType",
    "HandshakeCoordinator",
    "HandshakeState",
    "IdentityStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "MessageChunk",
    "PendingRequest",
    "ReconnectState",
    "ReconnectionManager",
    "RequestCorrelator",
    "__version__",
    "build_request",
    "connect_websocket",
    "load_config",
]
