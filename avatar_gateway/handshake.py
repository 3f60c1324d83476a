"""Challenge/response handshake run on every freshly opened session."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import (
    GatewayClientError,
    GatewayConnectionError,
    GatewayHandshakeError,
    GatewayResponseError,
)
from .protocol import (
    DEFAULT_CAPS,
    METHOD_CONNECT,
    ClientInfo,
    HelloOk,
    build_connect_params,
    parse_hello_ok,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .correlator import RequestCorrelator
    from .identity import IdentityStore

_LOGGER = logging.getLogger(__name__)


class HandshakeState(Enum):
    """Handshake progress for one session."""

    IDLE = "idle"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AWAITING_RESULT = "awaiting_result"
    READY = "ready"
    FAILED = "failed"


class HandshakeCoordinator:
    """Drive the connect handshake for a single transport session.

    The listener feeds ``connect.challenge`` events into
    :meth:`handle_challenge`; the connect request itself runs in a separate
    task so the listener stays free to deliver its response. The outcome is
    awaited through :meth:`wait`.
    """

    def __init__(
        self,
        correlator: RequestCorrelator,
        identity: IdentityStore,
        *,
        client: ClientInfo,
        token: str | None = None,
        role: str = "viewer",
        scopes: Sequence[str] = ("chat", "events"),
        caps: Sequence[str] = DEFAULT_CAPS,
        locale: str | None = None,
        name: str = "gateway",
    ) -> None:
        self._correlator = correlator
        self._identity = identity
        self._client = client
        self._token = token
        self._role = role
        self._scopes = tuple(scopes)
        self._caps = tuple(caps)
        self._locale = locale
        self._name = name

        self._state = HandshakeState.IDLE
        self._result: asyncio.Future[HelloOk] | None = None
        self._request_task: asyncio.Task[None] | None = None
        self._hello: HelloOk | None = None

    @property
    def state(self) -> HandshakeState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is HandshakeState.READY

    @property
    def hello(self) -> HelloOk | None:
        return self._hello

    def start(self) -> None:
        """Begin waiting for the gateway challenge (call once the socket is open)."""
        if self._state is not HandshakeState.IDLE:
            return
        self._result = asyncio.get_running_loop().create_future()
        self._state = HandshakeState.AWAITING_CHALLENGE
        _LOGGER.debug("[%s] Handshake: waiting for challenge", self._name)

    def handle_challenge(self, payload: Any) -> None:
        """Answer a ``connect.challenge`` event with a connect request."""
        if self._state is not HandshakeState.AWAITING_CHALLENGE:
            _LOGGER.debug(
                "[%s] Ignoring challenge in state %s", self._name, self._state.value
            )
            return

        nonce = payload.get("nonce") if isinstance(payload, dict) else None
        params = build_connect_params(
            client=self._client,
            nonce=nonce,
            token=self._token,
            device_token=self._identity.device_token,
            role=self._role,
            scopes=self._scopes,
            caps=self._caps,
            locale=self._locale,
        )
        self._state = HandshakeState.AWAITING_RESULT
        _LOGGER.debug("[%s] Challenge received, sending connect", self._name)
        self._request_task = asyncio.create_task(self._send_connect(params))

    async def _send_connect(self, params: dict[str, Any]) -> None:
        try:
            payload = await self._correlator.send(METHOD_CONNECT, params)
        except GatewayResponseError as err:
            self.fail(GatewayHandshakeError(str(err)))
            return
        except GatewayClientError as err:
            self.fail(err)
            return

        try:
            hello = parse_hello_ok(payload)
        except ValueError as err:
            self.fail(GatewayHandshakeError(str(err)))
            return

        if hello.device_token:
            self._identity.save_device_token(hello.device_token)

        if self._state is not HandshakeState.AWAITING_RESULT:
            return
        self._hello = hello
        self._state = HandshakeState.READY
        if self._result is not None and not self._result.done():
            self._result.set_result(hello)

    def fail(self, error: GatewayClientError) -> None:
        """Mark the handshake failed unless it already finished."""
        if self._state in (HandshakeState.READY, HandshakeState.FAILED):
            return
        _LOGGER.warning("[%s] Handshake failed: %s", self._name, error)
        self._state = HandshakeState.FAILED
        if self._result is not None and not self._result.done():
            self._result.set_exception(error)

    def cancel(self) -> None:
        """Abort an unfinished handshake without reporting an error."""
        if self._request_task is not None and not self._request_task.done():
            self._request_task.cancel()
        if self._state not in (HandshakeState.READY, HandshakeState.FAILED):
            self._state = HandshakeState.FAILED
        if self._result is not None and not self._result.done():
            self._result.cancel()

    async def wait(self) -> HelloOk:
        """Wait for the handshake outcome.

        Raises:
            GatewayHandshakeError: Gateway rejected the connect request.
            GatewayClientError: Transport failure before completion.
        """
        if self._result is None:
            raise GatewayConnectionError("Handshake has not started")
        return await asyncio.shield(self._result)
