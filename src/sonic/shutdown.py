"""Signal-driven cancellation and queue connection teardown."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from types import TracebackType

from sonic.cancellation import CancellationToken
from sonic.queue.base import QueueBackend

logger = logging.getLogger(__name__)

TEARDOWN_JOIN_SECONDS = 10.0


class ShutdownCoordinator:
    """Own the bridge's cancellation token for the lifetime of a run.

    Entering the coordinator installs SIGINT/SIGTERM handlers that cancel the
    token and starts a listener that disconnects the queue once the token is
    cancelled. Exiting cancels the token (if nothing else did) and waits for
    the disconnect.
    """

    def __init__(
        self,
        *,
        queue: QueueBackend,
        parent: CancellationToken | None = None,
        install_signal_handlers: bool = True,
    ) -> None:
        self.queue = queue
        self.token = parent.child() if parent is not None else CancellationToken()
        self.install_signal_handlers = install_signal_handlers
        self.signal_name: str | None = None
        self._teardown_thread: threading.Thread | None = None
        self._signals_cm = None

    def __enter__(self) -> ShutdownCoordinator:
        if self.install_signal_handlers:
            self._signals_cm = self._signal_handlers()
            self._signals_cm.__enter__()
        self._teardown_thread = threading.Thread(
            target=self._disconnect_when_cancelled,
            name="sonic-queue-teardown",
            daemon=True,
        )
        self._teardown_thread.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.token.cancel("run finished")
        if self._teardown_thread is not None:
            self._teardown_thread.join(TEARDOWN_JOIN_SECONDS)
        if self._signals_cm is not None:
            self._signals_cm.__exit__(None, None, None)
            self._signals_cm = None

    def request_stop(self, *, signal_name: str) -> None:
        if self.token.cancel(f"signal {signal_name}"):
            self.signal_name = signal_name
            logger.info("Received %s, shutting down", signal_name)

    def _disconnect_when_cancelled(self) -> None:
        self.token.wait()
        logger.info("Disconnecting queue (%s)", self.token.reason)
        try:
            self.queue.disconnect()
        except Exception:
            logger.exception("Queue disconnect failed")

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            try:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
            except ValueError:
                pass
