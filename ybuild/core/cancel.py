"""
Cancellation — the ambient signal threaded through every blocking call.

A ``CancelToken`` is created per CLI invocation and passed down to biomes,
downloads, extraction and resource waits. Blocking loops poll it (or wait on
it) and raise ``CancelError`` once it fires. Teardown always runs with a
fresh token from ``detached()`` so cleanup cannot be cancelled.
"""

from __future__ import annotations

import contextlib
import logging
import signal
import threading
from collections.abc import Iterator

from ybuild.core.errors import CancelError

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation flag safe to share between threads."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to *timeout* seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def check(self) -> None:
        """Raise ``CancelError`` if the token has fired."""
        if self._event.is_set():
            raise CancelError(self._reason or "cancelled")


def detached() -> CancelToken:
    """Return a token that is never cancelled, for teardown paths."""
    return CancelToken()


@contextlib.contextmanager
def cancel_on_signals(token: CancelToken) -> Iterator[CancelToken]:
    """Cancel *token* on SIGINT/SIGTERM for the duration of the block.

    A second SIGINT falls through to the default handler so a stuck
    teardown can still be interrupted. Outside the main thread this is a
    no-op because Python only delivers signals there.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    previous: dict[int, object] = {}

    def _handler(signum: int, _frame: object) -> None:
        name = signal.Signals(signum).name
        logger.warning("Received %s, cancelling build", name)
        token.cancel(f"interrupted by {name}")
        signal.signal(signal.SIGINT, signal.default_int_handler)

    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handler)
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)  # type: ignore[arg-type]
