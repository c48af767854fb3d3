"""Cooperative cancellation shared by stream producers and consumers."""

import threading
from typing import Callable, List

from gitvis.errors import LoadCancelled


class CancellationToken:
    """Created by the caller, handed to a producer, checked between chunks.

    Thread-safe so a request handler can cancel a producer that runs in a
    worker thread.
    """

    def __init__(self):
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the token is cancelled (immediately if it already is)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise LoadCancelled("Retrieval was cancelled")
