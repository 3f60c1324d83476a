"""Normalize gateway event frames into message chunks.

The gateway multiplexes several kinds of output over one connection:

- ``agent`` events stream the active turn. ``stream`` selects assistant
  text, thinking or tool output; ``status`` marks the end of the turn
  (completed, aborted or error).
- ``chat`` events carry complete replies that arrived through another
  channel; they are delivered whole, never partially.
- ``tick`` heartbeats and ``presence`` updates carry no agent output.

Every event name the decoder does not know is ignored. Decoding is
synchronous and order preserving: frames are processed in arrival order and
the assistant text of the current turn is accumulated so the terminal
``end`` chunk carries the complete reply.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from .models import ChunkType, MessageChunk, now_ms
from .protocol import EVENT_AGENT, EVENT_CHAT, EVENT_PRESENCE, EVENT_TICK, error_message

_LOGGER = logging.getLogger(__name__)

STREAM_ASSISTANT = "assistant"
STREAM_THINKING = "thinking"
STREAM_TOOL = "tool"

END_STATUSES = frozenset({"completed", "done", "aborted"})
ERROR_STATUS = "error"


class EventDecoder:
    """Stateful decoder for one connector's event stream."""

    def __init__(self, *, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._buffer: list[str] = []

    @property
    def buffer(self) -> str:
        """Assistant text accumulated for the current turn."""
        return "".join(self._buffer)

    def reset(self) -> None:
        """Start a new turn."""
        self._buffer.clear()

    def decode(self, frame: dict[str, Any]) -> list[MessageChunk]:
        """Turn one event frame into zero or more chunks."""
        event = frame.get("event")
        payload = frame.get("payload")

        if event == EVENT_AGENT:
            return self._decode_agent(payload)
        if event == EVENT_CHAT:
            return self._decode_chat(payload)
        if event in (EVENT_TICK, EVENT_PRESENCE):
            return []

        _LOGGER.debug("Unhandled event: %s", event)
        return []

    def reply_chunks(self, text: str) -> list[MessageChunk]:
        """Chunks for a complete out-of-turn reply: text then end."""
        if not text:
            return []
        return [self._chunk(ChunkType.TEXT, text), self._chunk(ChunkType.END, text)]

    def error_chunk(self, message: str) -> MessageChunk:
        return self._chunk(ChunkType.ERROR, message)

    def _decode_agent(self, payload: Any) -> list[MessageChunk]:
        if not isinstance(payload, dict) or not payload:
            return []

        stream = payload.get("stream")
        data = payload.get("data")
        data = data if isinstance(data, dict) else {}

        if stream == STREAM_ASSISTANT:
            text = _first_text(data.get("delta"), data.get("text"))
            if not text:
                return []
            self._buffer.append(text)
            return [self._chunk(ChunkType.TEXT, text)]

        if stream == STREAM_THINKING:
            text = _first_text(data.get("delta"), data.get("text"))
            return [self._chunk(ChunkType.THINKING, text)] if text else []

        if stream == STREAM_TOOL:
            return [self._chunk(ChunkType.TOOL, _describe_tool(data))] if data else []

        status = payload.get("status")
        if status in END_STATUSES:
            text = self.buffer
            self.reset()
            return [self._chunk(ChunkType.END, text)]

        if status == ERROR_STATUS or payload.get("error"):
            self.reset()
            message = error_message(payload.get("error"), "Unknown error")
            return [self._chunk(ChunkType.ERROR, message)]

        return []

    def _decode_chat(self, payload: Any) -> list[MessageChunk]:
        if not isinstance(payload, dict):
            return []
        if not (payload.get("fromAssistant") or payload.get("role") == "assistant"):
            return []
        text = _first_text(
            payload.get("text"), payload.get("content"), payload.get("message")
        )
        return self.reply_chunks(text)

    def _chunk(self, chunk_type: ChunkType, content: str) -> MessageChunk:
        return MessageChunk(type=chunk_type, content=content, timestamp=self._clock())


def _first_text(*candidates: Any) -> str:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return ""


def _describe_tool(data: dict[str, Any]) -> str:
    """Render tool activity as JSON with name and args when known."""
    name = data.get("name") or data.get("tool")
    if name:
        args = data.get("args", data.get("input"))
        return json.dumps({"name": name, "args": args}, ensure_ascii=False)
    return json.dumps(data, ensure_ascii=False)
