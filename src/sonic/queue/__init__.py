"""Queue backend implementations."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from sonic.config import SUPPORTED_BACKENDS
from sonic.errors import ConfigurationError
from sonic.queue.base import PollingQueue, QueueBackend, TaskHandler
from sonic.queue.memory import MemoryQueue
from sonic.queue.sqlite import SQLiteQueue

__all__ = [
    "SUPPORTED_BACKENDS",
    "MemoryQueue",
    "PollingQueue",
    "QueueBackend",
    "SQLiteQueue",
    "TaskHandler",
    "connect_queue",
]


def connect_queue(
    backend_kind: str,
    topics: Iterable[str],
    *,
    db_path: Path,
    poll_interval_seconds: float,
) -> PollingQueue:
    """Open the configured backend and connect it to the given topics."""

    kind = backend_kind.strip().lower()
    queue: PollingQueue
    if kind == "memory":
        queue = MemoryQueue(poll_interval_seconds=poll_interval_seconds)
    elif kind == "sqlite":
        queue = SQLiteQueue(db_path, poll_interval_seconds=poll_interval_seconds)
    else:
        raise ConfigurationError(
            f"Unsupported queue backend: {backend_kind!r}. "
            f"Expected one of: {', '.join(SUPPORTED_BACKENDS)}.",
        )
    queue.connect(topics)
    return queue
