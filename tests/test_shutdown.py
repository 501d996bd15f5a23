from __future__ import annotations

import os
import signal
import sys
import threading

import allure
import pytest

from sonic.cancellation import CancellationToken
from sonic.queue import MemoryQueue
from sonic.shutdown import ShutdownCoordinator

pytestmark = [
    allure.epic("Process Lifecycle"),
    allure.feature("Graceful Shutdown"),
]


class _CountingQueue(MemoryQueue):
    def __init__(self) -> None:
        super().__init__()
        self.disconnects = 0
        self.disconnected = threading.Event()

    def disconnect(self) -> None:
        self.disconnects += 1
        super().disconnect()
        self.disconnected.set()


def test_token_cancels_once_and_keeps_first_reason() -> None:
    token = CancellationToken()

    assert token.cancel("first") is True
    assert token.cancel("second") is False
    assert token.cancelled is True
    assert token.reason == "first"


def test_child_token_follows_parent_but_not_the_reverse() -> None:
    parent = CancellationToken()
    child = parent.child()
    sibling = parent.child()

    sibling.cancel("local")
    assert parent.cancelled is False

    parent.cancel("root")
    assert child.cancelled is True
    assert child.reason == "root"
    assert parent.child().cancelled is True


def test_cancellation_disconnects_queue_exactly_once() -> None:
    queue = _CountingQueue()
    queue.connect(["jobs"])

    with ShutdownCoordinator(queue=queue, install_signal_handlers=False) as shutdown:
        shutdown.token.cancel("test")
        assert queue.disconnected.wait(5)

    assert queue.disconnects == 1
    assert queue.connected is False


def test_exit_without_cancel_still_releases_queue() -> None:
    queue = _CountingQueue()
    queue.connect(["jobs"])

    with ShutdownCoordinator(queue=queue, install_signal_handlers=False) as shutdown:
        assert shutdown.token.cancelled is False

    assert shutdown.token.cancelled is True
    assert queue.disconnects == 1


def test_parent_cancellation_propagates() -> None:
    parent = CancellationToken()
    queue = _CountingQueue()

    with ShutdownCoordinator(queue=queue, parent=parent, install_signal_handlers=False) as shutdown:
        parent.cancel("root context done")
        assert shutdown.token.wait(5)
        assert queue.disconnected.wait(5)

    assert queue.disconnects == 1


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
def test_sigterm_cancels_token_and_restores_handler() -> None:
    original = signal.getsignal(signal.SIGTERM)
    queue = _CountingQueue()

    with ShutdownCoordinator(queue=queue) as shutdown:
        os.kill(os.getpid(), signal.SIGTERM)
        assert shutdown.token.wait(5)
        assert shutdown.signal_name == "SIGTERM"
        assert queue.disconnected.wait(5)

    assert signal.getsignal(signal.SIGTERM) == original


def test_signal_handlers_are_skipped_outside_main_thread() -> None:
    errors: list[BaseException] = []

    def _run() -> None:
        try:
            with ShutdownCoordinator(queue=_CountingQueue()) as shutdown:
                assert shutdown.token.cancelled is False
        except BaseException as error:  # noqa: BLE001
            errors.append(error)

    thread = threading.Thread(target=_run)
    thread.start()
    thread.join(timeout=5)

    assert errors == []
