"""Cooperative cancellation flag shared by the sampler and the encoder."""

from __future__ import annotations

import threading

from alphagif.errors import Cancelled


class CancellationToken:
    """Settable-once flag observed at every safe point of a conversion."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled()

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; return True once cancelled."""

        return self._event.wait(timeout)
