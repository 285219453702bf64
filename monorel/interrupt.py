"""Interrupt handling for manifest writes and git mutations.

A Ctrl-C that lands while manifests are being written or a commit is being
made must not leave half the work done. Mutations run inside ``shielded``:
SIGINT is recorded on the run's CancelToken instead of raising, the unit
finishes, and the next ``raise_if_cancelled`` check stops the run cleanly.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from types import FrameType

from .errors import UserAbort


class CancelToken:
    """Cancellation flag owned by a single run."""

    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise UserAbort("interrupted")


@contextmanager
def shielded(token: CancelToken) -> Iterator[None]:
    """Defer SIGINT until the enclosed block finishes.

    Signal handlers can only be installed from the main thread; elsewhere
    the block simply runs unshielded.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, frame: FrameType | None) -> None:
        print("\n  Interrupt received, finishing the current step...")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)
