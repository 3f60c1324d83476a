"""Bounded fixed-interval reconnection after abnormal closes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from .errors import GatewayClientError

_LOGGER = logging.getLogger(__name__)


class ReconnectState(Enum):
    """Reconnection progress."""

    STABLE = "stable"
    SCHEDULED = "scheduled"
    CONNECTING = "connecting"
    EXHAUSTED = "exhausted"


class ReconnectionManager:
    """Own the retry timer and attempt budget for one connector.

    ``reconnect`` must run a full session open plus handshake and raise a
    :class:`GatewayClientError` on failure. The connector calls
    :meth:`mark_ready` whenever a session reaches ready.
    """

    def __init__(
        self,
        reconnect: Callable[[], Awaitable[None]],
        *,
        interval: float,
        max_attempts: int,
        on_exhausted: Callable[[], None],
        name: str = "gateway",
    ) -> None:
        self._reconnect = reconnect
        self._interval = interval
        self._max_attempts = max_attempts
        self._on_exhausted = on_exhausted
        self._name = name

        self._state = ReconnectState.STABLE
        self._attempts = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ReconnectState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def is_active(self) -> bool:
        """True while a retry is scheduled or running."""
        return self._state in (ReconnectState.SCHEDULED, ReconnectState.CONNECTING)

    def configure(
        self, *, interval: float | None = None, max_attempts: int | None = None
    ) -> None:
        """Update policy; takes effect from the next scheduled retry."""
        if interval is not None:
            self._interval = interval
        if max_attempts is not None:
            self._max_attempts = max_attempts

    def notify_abnormal_close(self) -> None:
        """Session closed without disconnect(); start retrying."""
        if self.is_active:
            return
        self._schedule()

    def mark_ready(self) -> None:
        """A session reached ready; reset the attempt budget."""
        if self._attempts:
            _LOGGER.info(
                "[%s] Reconnected after %d attempt(s)", self._name, self._attempts
            )
        self._attempts = 0
        self._state = ReconnectState.STABLE

    def cancel(self) -> None:
        """Cancel a scheduled or running retry and reset the budget."""
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._attempts = 0
        self._state = ReconnectState.STABLE

    def _schedule(self) -> None:
        if self._attempts >= self._max_attempts:
            _LOGGER.warning(
                "[%s] Reconnect attempts exhausted (%d/%d), giving up",
                self._name,
                self._attempts,
                self._max_attempts,
            )
            self._state = ReconnectState.EXHAUSTED
            self._task = None
            self._on_exhausted()
            return

        self._attempts += 1
        self._state = ReconnectState.SCHEDULED
        _LOGGER.info(
            "[%s] Reconnecting in %.1fs (attempt %d/%d)",
            self._name,
            self._interval,
            self._attempts,
            self._max_attempts,
        )
        self._task = asyncio.create_task(self._reconnect_after_delay(self._interval))

    async def _reconnect_after_delay(self, delay: float) -> None:
        """Reconnect after delay, rescheduling on failure."""
        try:
            await asyncio.sleep(delay)
            self._state = ReconnectState.CONNECTING
            await self._reconnect()
        except asyncio.CancelledError:
            _LOGGER.debug("[%s] Reconnect cancelled", self._name)
            raise
        except GatewayClientError as err:
            _LOGGER.warning(
                "[%s] Reconnect attempt %d failed: %s", self._name, self._attempts, err
            )
            if self._task is asyncio.current_task():
                self._schedule()
        else:
            if self._task is asyncio.current_task():
                self._task = None
