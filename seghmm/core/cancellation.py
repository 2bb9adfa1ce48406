"""Cooperative cancellation for long fits."""

import threading
from typing import Callable, Optional

from seghmm.core.errors import FitCancelled


class CancellationToken:
    """
    Thread-safe cancellation flag usable as a ``cancel_check`` callable.

    Another thread (or a signal handler) calls cancel(); the fit polls the
    token between phases and unwinds with FitCancelled.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    def reset(self):
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __call__(self) -> bool:
        return self._event.is_set()


def checkpoint(cancel_check: Optional[Callable[[], bool]], phase: str):
    """Poll the cancellation callable; raise FitCancelled if it asks to stop."""
    if cancel_check is None:
        return
    try:
        requested = cancel_check()
    except FitCancelled as e:
        if e.phase == 'unknown':
            e.phase = phase
        raise
    if requested:
        raise FitCancelled(phase)
