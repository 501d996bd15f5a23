"""Idle-exit watchdog for ephemeral hosting."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable

from sonic.cancellation import CancellationToken

logger = logging.getLogger(__name__)

IDLE_EXIT_CODE = 3


class ActivityMonitor:
    """Busy flag written by the orchestrator and read by the watchdog."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy = False
        self._handled_since_check = False

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def mark_busy(self) -> None:
        with self._lock:
            self._busy = True
            self._handled_since_check = True

    def mark_idle(self) -> None:
        with self._lock:
            self._busy = False

    def check_and_reset(self) -> bool:
        """Return True if a task is running or was handled since the previous check."""

        with self._lock:
            active = self._busy or self._handled_since_check
            self._handled_since_check = False
            return active


class IdleWatchdog:
    """Force-exit the process when no task was handled within the idle window.

    The exit skips all cleanup on purpose: it exists so that ephemeral hosts
    tear the container down as soon as the queue runs dry.
    """

    def __init__(
        self,
        *,
        monitor: ActivityMonitor,
        max_idle_seconds: float,
        token: CancellationToken,
        exit_func: Callable[[int], object] = os._exit,
        exit_code: int = IDLE_EXIT_CODE,
    ) -> None:
        self.monitor = monitor
        self.max_idle_seconds = max_idle_seconds
        self.token = token
        self._exit_func = exit_func
        self.exit_code = exit_code
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._watch, name="sonic-idle-watchdog", daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _watch(self) -> None:
        while not self.token.wait(self.max_idle_seconds):
            if self.monitor.check_and_reset():
                continue
            logger.warning(
                "No task handled in %.1fs, exiting with code %s",
                self.max_idle_seconds,
                self.exit_code,
            )
            self._exit_func(self.exit_code)
            return
