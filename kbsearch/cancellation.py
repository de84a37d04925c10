"""Cooperative cancellation for long-running index builds and background loops."""

import threading

from .errors import ReindexCancelled


class CancellationToken:
    """
    Thread-safe cancellation flag.

    The owner calls cancel(); workers poll `cancelled` (or call
    raise_if_cancelled) between units of work.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, processed: int = 0) -> None:
        if self._event.is_set():
            raise ReindexCancelled(processed)
