"""Task lifecycle orchestration: start webhook, process, outcome webhook, verdict."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from sonic.cancellation import CancellationToken
from sonic.errors import AbortSignaled, NotifyTransportFailed, ProcessFailed
from sonic.models import HandlingVerdict, LifecycleEvent, Task, WebhookOutcome
from sonic.queue.base import QueueBackend
from sonic.watchdog import ActivityMonitor

logger = logging.getLogger(__name__)


class Runner(Protocol):
    def run(self, token: CancellationToken, command_line: str) -> None: ...


class Notifier(Protocol):
    def notify(self, event: LifecycleEvent, task: Task) -> WebhookOutcome: ...


@dataclass(slots=True)
class OrchestratorRunSummary:
    """Aggregate counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    aborted: int = 0
    requeued: int = 0


class TaskOrchestrator:
    """Handle deliveries one at a time and tell the queue whether to redeliver.

    Only the start webhook can veto or postpone execution. Once the process
    has run, success/fail webhook problems are logged and never change the
    verdict.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        queue: QueueBackend,
        runner: Runner,
        notifier: Notifier,
        token: CancellationToken,
        topic: str,
        retry: bool,
        single_shot: bool = False,
        monitor: ActivityMonitor | None = None,
    ) -> None:
        self.queue = queue
        self.runner = runner
        self.notifier = notifier
        self.token = token
        self.topic = topic
        self.retry = retry
        self.single_shot = single_shot
        self.monitor = monitor or ActivityMonitor()
        self.summary = OrchestratorRunSummary()

    def run(self) -> OrchestratorRunSummary:
        """Consume the topic until cancelled, or for exactly one delivery."""

        mode = "single-shot" if self.single_shot else "continuous"
        logger.info("Listening on queue %s (%s)", self.topic, mode)
        if self.single_shot:
            self.queue.pop(self.token, self.topic, self)
        else:
            self.queue.subscribe(self.token, self.topic, self)
        return self.summary

    def handle(self, task: Task) -> HandlingVerdict:
        self.monitor.mark_busy()
        try:
            verdict = self._handle(task)
        finally:
            self.monitor.mark_idle()
        self.summary.processed += 1
        if verdict.requeue:
            self.summary.requeued += 1
        return verdict

    def _handle(self, task: Task) -> HandlingVerdict:
        start_verdict = self._signal_start(task)
        if start_verdict is not None:
            self.summary.aborted += 1
            return start_verdict

        try:
            self.runner.run(self.token, task.body)
        except ProcessFailed as error:
            logger.error("Process failed for task %s: %s", task.to_payload(), error)
            self.summary.failed += 1
            self._notify_outcome(LifecycleEvent.FAIL, task)
            return HandlingVerdict(requeue=self.retry, error=error)

        self.summary.succeeded += 1
        self._notify_outcome(LifecycleEvent.SUCCESS, task)
        return HandlingVerdict(requeue=False, error=None)

    def _signal_start(self, task: Task) -> HandlingVerdict | None:
        """Return an early verdict when the start webhook blocks execution."""

        outcome = self.notifier.notify(LifecycleEvent.START, task)
        if outcome is WebhookOutcome.BAD_REQUEST:
            logger.info("Abort signal received for task %s", task.to_payload())
            return HandlingVerdict(
                requeue=False,
                error=AbortSignaled("Start webhook rejected the task"),
            )
        if outcome is WebhookOutcome.SERVER_FAILED:
            logger.error("Start webhook failed, will requeue task %s", task.to_payload())
            return HandlingVerdict(
                requeue=True,
                error=NotifyTransportFailed("Start webhook could not be delivered"),
            )
        return None

    def _notify_outcome(self, event: LifecycleEvent, task: Task) -> None:
        outcome = self.notifier.notify(event, task)
        if outcome in {WebhookOutcome.SERVER_FAILED, WebhookOutcome.BAD_REQUEST}:
            logger.error(
                "Error sending %s webhook (%s) for task %s",
                event.value,
                outcome.value,
                task.to_payload(),
            )
