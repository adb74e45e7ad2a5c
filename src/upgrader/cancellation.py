"""Cooperative cancellation for the orchestration loop."""

from __future__ import annotations

import logging
import threading

log = logging.getLogger("upgrader.cancellation")


class OperationCancelled(Exception):
    """Raised at a cancellation checkpoint once the token has been cancelled."""
    pass


class CancellationToken:
    """Thread-safe cancellation flag shared by the driver and its collaborators.

    Cancellation is only observed at explicit checkpoints
    (``raise_if_cancelled``); nothing is interrupted mid-operation.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @classmethod
    def none(cls) -> CancellationToken:
        """A fresh token that nobody else holds, so it is never cancelled."""
        return cls()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if not self._event.is_set():
            log.info("Cancellation requested")
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation was cancelled")
