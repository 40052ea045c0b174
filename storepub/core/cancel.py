"""Cooperative cancellation.

One ``CancellationToken`` is created per dispatch attempt and passed to
every call that may block (uploads, polling, subprocesses). Blocking code
waits on the token instead of sleeping, so a single ``cancel()`` wakes
every nested wait immediately.
"""

from __future__ import annotations

import threading

__all__ = ["CancellationToken"]


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"CancellationToken({state})"
