"""Subscriber registry with per-callback error isolation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CallbackRegistry(Generic[T]):
    """Ordered set of callbacks notified with one value each.

    A callback that raises is logged and skipped; remaining callbacks still
    run. Callbacks may unsubscribe themselves (or others) while being
    notified.
    """

    def __init__(self, kind: str) -> None:
        self._kind = kind
        self._callbacks: list[Callable[[T], None]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, value: T) -> None:
        for callback in list(self._callbacks):
            self.call(callback, value)

    def call(self, callback: Callable[[T], None], value: T) -> None:
        try:
            callback(value)
        except Exception as err:
            _LOGGER.exception("%s callback error: %s", self._kind, err)
