"""One-shot cancellation token shared between threads."""

from __future__ import annotations

import threading


class CancellationToken:
    """Thread-safe flag that can be cancelled exactly once.

    Child tokens are cancelled together with their parent but can also be
    cancelled on their own without affecting the parent.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._children: list[CancellationToken] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel the token; returns False when it was already cancelled."""

        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            children = list(self._children)
            self._children.clear()
        for child in children:
            child.cancel(reason)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout elapses; returns the cancelled state."""

        return self._event.wait(timeout)

    def child(self) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            if not self._event.is_set():
                self._children.append(token)
                return token
        token.cancel(self._reason or "cancelled")
        return token
