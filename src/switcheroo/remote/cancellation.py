"""
CancellationToken - explicit "shutdown requested" flag.

Threaded into whatever owns the streaming loop instead of living in module
state, so cancellation and cleanup can be driven from tests without a real
signal.
"""

import threading
from typing import Callable


class CancellationToken:
    """One-shot cancellation flag with callbacks."""

    def __init__(self):
        self._event = threading.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancel (immediately if already cancelled)."""
        if self.cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns:
            True on the first call, False if already cancelled (callbacks
            only run once).
        """
        if self._event.is_set():
            return False
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True
