"""Shared value types exposed by the gateway connectors."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class ConnectionStatus(Enum):
    """Externally visible connection status."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ChunkType(Enum):
    """Kinds of normalized agent output."""

    TEXT = "text"
    THINKING = "thinking"
    TOOL = "tool"
    END = "end"
    ERROR = "error"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class MessageChunk:
    """A normalized unit of streamed agent output.

    Attributes:
        type: Chunk kind.
        content: Text delta, full reply (for END), tool description or
            error message depending on ``type``.
        timestamp: Epoch milliseconds at which the chunk was produced.
    """

    type: ChunkType
    content: str
    timestamp: int = field(default_factory=now_ms)
