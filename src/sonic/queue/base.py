"""Queue backend contract and shared polling delivery loop."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from sonic.cancellation import CancellationToken
from sonic.models import HandlingVerdict, Task

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 0.5


class TaskHandler(Protocol):
    """Callback invoked once per delivered task."""

    def handle(self, task: Task) -> HandlingVerdict:
        """Handle a task and tell the backend whether to redeliver it."""


class QueueBackend(Protocol):
    """Minimal subscribe/pop/acknowledge contract consumed by the orchestrator."""

    def connect(self, topics: Iterable[str]) -> None: ...

    def publish(self, topic: str, task: Task) -> Task: ...

    def subscribe(self, token: CancellationToken, topic: str, handler: TaskHandler) -> None: ...

    def pop(self, token: CancellationToken, topic: str, handler: TaskHandler) -> bool: ...

    def disconnect(self) -> None: ...


class PollingQueue:
    """Delivery loop shared by backends that can claim one task at a time.

    Subclasses implement `_claim`, `_acknowledge` and `_requeue`; a claimed
    task is released through exactly one of the latter two.
    """

    def __init__(self, *, poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS) -> None:
        self.poll_interval_seconds = poll_interval_seconds
        self.topics: tuple[str, ...] = ()

    def connect(self, topics: Iterable[str]) -> None:
        self.topics = tuple(topics)

    def subscribe(self, token: CancellationToken, topic: str, handler: TaskHandler) -> None:
        """Deliver tasks to the handler until the token is cancelled."""

        while not token.cancelled:
            if not self._deliver_next(topic, handler):
                token.wait(self.poll_interval_seconds)

    def pop(self, token: CancellationToken, topic: str, handler: TaskHandler) -> bool:
        """Wait for one delivery and handle it; returns False if cancelled first."""

        while not token.cancelled:
            if self._deliver_next(topic, handler):
                return True
            token.wait(self.poll_interval_seconds)
        return False

    def _deliver_next(self, topic: str, handler: TaskHandler) -> bool:
        task = self._claim(topic)
        if task is None:
            return False

        try:
            verdict = handler.handle(task)
        except BaseException:
            self._requeue(topic, task)
            raise

        if verdict.requeue:
            logger.info("Requeueing task %s on %s", task.task_id, topic)
            self._requeue(topic, task)
        else:
            self._acknowledge(topic, task)
        return True

    def publish(self, topic: str, task: Task) -> Task:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError

    def _claim(self, topic: str) -> Task | None:
        raise NotImplementedError

    def _acknowledge(self, topic: str, task: Task) -> None:
        raise NotImplementedError

    def _requeue(self, topic: str, task: Task) -> None:
        raise NotImplementedError
