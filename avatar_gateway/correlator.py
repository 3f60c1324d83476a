"""Request/response correlation for gateway requests."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import GatewayRequestAbandoned, GatewayResponseError, GatewayTimeout
from .protocol import build_request, error_message, generate_request_id

_LOGGER = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass(slots=True)
class PendingRequest:
    """Outstanding request awaiting its response frame."""

    id: str
    method: str
    issued_at: float
    future: asyncio.Future[Any]
    timeout_handle: asyncio.TimerHandle | None = None
    abandoned: bool = field(default=False)


class RequestCorrelator:
    """Assign ids to outgoing requests and match inbound responses.

    Usage:
        correlator = RequestCorrelator(ws.send_json)
        payload = await correlator.send("agent", {"message": "hi"})
        # listener side
        correlator.handle_response(frame)
    """

    def __init__(
        self,
        sender: Callable[[dict[str, Any]], Awaitable[None]],
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        id_factory: Callable[[], str] = generate_request_id,
        name: str = "gateway",
    ) -> None:
        self._sender = sender
        self._timeout = timeout
        self._id_factory = id_factory
        self._name = name
        self._pending: dict[str, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    async def send(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a request and wait for its payload.

        Raises:
            GatewayResponseError: Gateway answered ok=false.
            GatewayTimeout: No response within the request timeout.
            GatewayRequestAbandoned: The session went away first.
            GatewayConnectionError: The frame could not be written.
        """
        request_id = self._id_factory()
        while request_id in self._pending:
            request_id = self._id_factory()

        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            id=request_id,
            method=method,
            issued_at=time.monotonic(),
            future=loop.create_future(),
        )
        pending.timeout_handle = loop.call_later(self._timeout, self._expire, request_id)
        self._pending[request_id] = pending

        frame = build_request(method, params, request_id=request_id)
        try:
            await self._sender(frame)
        except BaseException:
            self._discard(request_id)
            raise
        _LOGGER.debug("[%s] Request %s sent: %s", self._name, request_id, method)

        try:
            return await pending.future
        except asyncio.CancelledError:
            self._discard(request_id)
            task = asyncio.current_task()
            caller_cancelled = task is not None and task.cancelling() > 0
            if pending.abandoned and not caller_cancelled:
                raise GatewayRequestAbandoned(
                    f"Request {method} abandoned: session closed"
                ) from None
            raise

    def handle_response(self, frame: dict[str, Any]) -> bool:
        """Resolve the pending request matching a response frame.

        Returns:
            True if the frame matched an outstanding request.
        """
        request_id = frame.get("id")
        if not isinstance(request_id, str):
            _LOGGER.debug("[%s] Response without id dropped", self._name)
            return False

        pending = self._pending.pop(request_id, None)
        if pending is None:
            _LOGGER.debug("[%s] Response for unknown id %s dropped", self._name, request_id)
            return False

        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
        if pending.future.done():
            return False

        latency = time.monotonic() - pending.issued_at
        if frame.get("ok"):
            _LOGGER.debug(
                "[%s] Response %s ok (%.2fs)", self._name, request_id, latency
            )
            pending.future.set_result(frame.get("payload"))
        else:
            error = frame.get("error")
            message = error_message(error, "Request failed")
            code = error.get("code") if isinstance(error, dict) else None
            _LOGGER.warning(
                "[%s] Request %s (%s) failed: %s",
                self._name,
                request_id,
                pending.method,
                message,
            )
            pending.future.set_exception(GatewayResponseError(message, code=code))
        return True

    def abandon_all(self) -> None:
        """Drop every outstanding request; later responses are ignored."""
        if not self._pending:
            return
        _LOGGER.debug(
            "[%s] Abandoning %d pending requests", self._name, len(self._pending)
        )
        pending_requests = list(self._pending.values())
        self._pending.clear()
        for pending in pending_requests:
            pending.abandoned = True
            if pending.timeout_handle is not None:
                pending.timeout_handle.cancel()
            pending.future.cancel()

    def _expire(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.future.done():
            return
        _LOGGER.warning(
            "[%s] Request %s (%s) timed out after %.1fs",
            self._name,
            request_id,
            pending.method,
            self._timeout,
        )
        pending.future.set_exception(GatewayTimeout("Request timeout"))

    def _discard(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is not None and pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
