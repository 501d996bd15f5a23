"""In-process queue backend."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable
from dataclasses import replace
from uuid import uuid4

from sonic.models import Task
from sonic.queue.base import DEFAULT_POLL_INTERVAL_SECONDS, PollingQueue


class MemoryQueue(PollingQueue):
    """FIFO queue held in process memory; tasks do not survive a restart."""

    def __init__(self, *, poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS) -> None:
        super().__init__(poll_interval_seconds=poll_interval_seconds)
        self._lock = threading.Lock()
        self._queues: dict[str, deque[Task]] = {}
        self._deliveries: dict[str, int] = {}
        self.connected = False

    def connect(self, topics: Iterable[str]) -> None:
        super().connect(topics)
        with self._lock:
            for topic in self.topics:
                self._queues.setdefault(topic, deque())
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def publish(self, topic: str, task: Task) -> Task:
        if task.task_id is None:
            task = replace(task, task_id=str(uuid4()))
        with self._lock:
            self._queues.setdefault(topic, deque()).append(task)
        return task

    def pending(self, topic: str) -> list[Task]:
        with self._lock:
            return list(self._queues.get(topic, ()))

    def deliveries(self, task_id: str) -> int:
        with self._lock:
            return self._deliveries.get(task_id, 0)

    def _claim(self, topic: str) -> Task | None:
        with self._lock:
            queue = self._queues.get(topic)
            if not queue:
                return None
            task = queue.popleft()
            if task.task_id is not None:
                self._deliveries[task.task_id] = self._deliveries.get(task.task_id, 0) + 1
            return task

    def _acknowledge(self, topic: str, task: Task) -> None:
        return None

    def _requeue(self, topic: str, task: Task) -> None:
        with self._lock:
            self._queues.setdefault(topic, deque()).append(task)
