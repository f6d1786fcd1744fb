"""Cooperative cancellation shared between the control flow and worker threads."""
from __future__ import annotations

import threading
from typing import Optional

from common.errors import Cancelled


class CancelToken:
    """A one-shot flag that workers poll at request, chunk and entry boundaries.

    A child token reports cancelled when either itself or its parent is
    cancelled, so a worker pool can stop its own workers without touching
    the run-wide token.
    """

    def __init__(self, parent: Optional["CancelToken"] = None) -> None:
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        """Raise the flag; idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def raise_if_cancelled(self) -> None:
        """Raise Cancelled if this token or an ancestor is cancelled."""
        if self.cancelled:
            raise Cancelled("Operation was cancelled.")


def check(token: Optional[CancelToken]) -> None:
    """Convenience wrapper tolerating a missing token."""
    if token is not None:
        token.raise_if_cancelled()
