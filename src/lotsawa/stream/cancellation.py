"""Cancellation token shared between a stage and its stream read loop."""

from __future__ import annotations

from typing import Callable


class CancellationToken:
    """A one-shot flag plus signal.

    ``cancel()`` sets the flag and fires the registered callbacks once;
    later calls are no-ops. Callbacks registered after cancellation fire
    immediately.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """Signal cancellation. Returns False if the token was already signalled."""
        if self._cancelled:
            return False
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)
