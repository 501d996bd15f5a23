"""Controllers for the sonic CLI commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from sonic.config import Settings
from sonic.errors import ConfigurationError
from sonic.logging_setup import setup_logging
from sonic.models import Task
from sonic.orchestrator import TaskOrchestrator
from sonic.queue import connect_queue
from sonic.runner import CommandRunner
from sonic.shutdown import ShutdownCoordinator
from sonic.watchdog import ActivityMonitor, IdleWatchdog
from sonic.webhooks import WebhookNotifier


@dataclass(slots=True)
class QueueOptions:
    """CLI overrides for the queue connection."""

    queue: str | None = None
    backend: str | None = None
    db_path: Path | None = None


@dataclass(slots=True)
class RunCommand:
    """CLI input for running the bridge."""

    queue_options: QueueOptions = field(default_factory=QueueOptions)
    retry: bool | None = None
    single_shot: bool | None = None
    die_if_idle: bool | None = None
    max_idle_seconds: float | None = None
    configure_logging: bool = True


@dataclass(slots=True)
class PublishCommand:
    """CLI input for enqueuing a task."""

    body: str
    tags: dict[str, str] = field(default_factory=dict)
    queue_options: QueueOptions = field(default_factory=QueueOptions)


class BridgeCliController:
    """Wire settings, queue, notifier, runner and orchestrator together."""

    def run(self, command: RunCommand) -> list[str]:
        settings = _settings_with_overrides(command.queue_options)
        execution = settings.execution
        if command.retry is not None:
            execution.retry = command.retry
        if command.single_shot is not None:
            execution.single_shot = command.single_shot
        if command.die_if_idle is not None:
            execution.die_if_idle = command.die_if_idle
        if command.max_idle_seconds is not None:
            execution.max_idle_seconds = command.max_idle_seconds
        settings.validate()
        if command.configure_logging:
            setup_logging(settings.log_level)

        queue = connect_queue(
            settings.queue.backend,
            [settings.queue.topic],
            db_path=settings.queue.db_path,
            poll_interval_seconds=settings.queue.poll_interval_seconds,
        )
        monitor = ActivityMonitor()
        with (
            ShutdownCoordinator(queue=queue) as shutdown,
            WebhookNotifier(timeout_seconds=settings.webhooks.timeout_seconds) as notifier,
        ):
            if execution.die_if_idle:
                IdleWatchdog(
                    monitor=monitor,
                    max_idle_seconds=execution.max_idle_seconds,
                    token=shutdown.token,
                ).start()
            orchestrator = TaskOrchestrator(
                queue=queue,
                runner=CommandRunner(),
                notifier=notifier,
                token=shutdown.token,
                topic=settings.queue.topic,
                retry=execution.retry,
                single_shot=execution.single_shot,
                monitor=monitor,
            )
            summary = orchestrator.run()

        return [
            "Bridge summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} aborted={summary.aborted} "
            f"requeued={summary.requeued}",
        ]

    def publish(self, command: PublishCommand) -> list[str]:
        settings = _settings_with_overrides(command.queue_options)
        settings.validate()
        if settings.queue.backend == "memory":
            raise ConfigurationError("Publishing requires the sqlite backend.")
        queue = connect_queue(
            settings.queue.backend,
            [settings.queue.topic],
            db_path=settings.queue.db_path,
            poll_interval_seconds=settings.queue.poll_interval_seconds,
        )
        try:
            task = queue.publish(settings.queue.topic, Task(body=command.body, tags=command.tags))
        finally:
            queue.disconnect()
        return [f"Published task {task.task_id} to {settings.queue.topic}"]


def _settings_with_overrides(options: QueueOptions) -> Settings:
    settings = Settings.from_env()
    if options.queue is not None:
        settings.queue.topic = options.queue.strip()
    if options.backend is not None:
        settings.queue.backend = options.backend.strip().lower()
    if options.db_path is not None:
        settings.queue.db_path = options.db_path
    return settings
