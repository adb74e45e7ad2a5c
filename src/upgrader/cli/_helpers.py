"""Shared CLI helpers."""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from upgrader.cancellation import CancellationToken

log = logging.getLogger("upgrader.cli")

EXIT_OK = 0
EXIT_STARTUP_ERROR = 1
EXIT_CANCELLED = 130


@contextmanager
def cancel_on_sigterm(token: CancellationToken) -> Iterator[None]:
    """Cancel *token* on SIGTERM for the duration of the block.

    Only works from the main thread; silently skips otherwise
    (e.g. when run inside a test thread).
    """
    if threading.current_thread() is not threading.main_thread():
        log.debug("Not main thread; skipping signal handler installation")
        yield
        return

    def _handler(signum: int, frame: Any) -> None:
        sig_name = signal.Signals(signum).name
        log.info("Received %s, cancelling the upgrade", sig_name)
        token.cancel()

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)
