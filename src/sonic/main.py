"""CLI entrypoint for sonic."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import rich_click as click

from sonic import __version__
from sonic.controllers import BridgeCliController, PublishCommand, QueueOptions, RunCommand
from sonic.errors import ConfigurationError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = BridgeCliController()

CommandFunc = TypeVar("CommandFunc", bound=Callable[..., Any])


def _queue_options(function: CommandFunc) -> CommandFunc:
    function = click.option(
        "--db-path",
        type=click.Path(path_type=Path),
        default=None,
        help="SQLite queue file (sqlite backend).",
    )(function)
    function = click.option(
        "--backend",
        type=click.Choice(["memory", "sqlite"], case_sensitive=False),
        default=None,
        help="Queue backend. Overrides SONIC_QUEUE_BACKEND.",
    )(function)
    return click.option(
        "--queue",
        default=None,
        help="Queue topic name. Overrides SONIC_QUEUE.",
    )(function)


@click.group()
@click.version_option(version=__version__, prog_name="sonic")
def sonic() -> None:
    """Run queued command lines and report progress to task webhooks."""


@sonic.command("run")
@_queue_options
@click.option(
    "--retry/--no-retry",
    default=None,
    help="Requeue tasks whose process fails. Overrides SONIC_RETRY.",
)
@click.option(
    "--single-shot/--continuous",
    default=None,
    help="Handle exactly one delivery, or subscribe until stopped.",
)
@click.option(
    "--die-if-idle/--stay-alive",
    default=None,
    help="Exit when no task was handled within the idle window.",
)
@click.option(
    "--max-idle-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Idle window for --die-if-idle. Overrides SONIC_MAX_IDLE_SECONDS.",
)
def run(  # noqa: PLR0913
    queue: str | None,
    backend: str | None,
    db_path: Path | None,
    retry: bool | None,
    single_shot: bool | None,
    die_if_idle: bool | None,
    max_idle_seconds: float | None,
) -> None:
    """Consume the queue and execute each task body."""

    try:
        lines = CONTROLLER.run(
            RunCommand(
                queue_options=QueueOptions(queue=queue, backend=backend, db_path=db_path),
                retry=retry,
                single_shot=single_shot,
                die_if_idle=die_if_idle,
                max_idle_seconds=max_idle_seconds,
            ),
        )
    except ConfigurationError as error:
        raise click.UsageError(str(error)) from error
    _emit_lines(lines)


@sonic.command("publish")
@_queue_options
@click.argument("body")
@click.option(
    "--tag",
    "tags",
    multiple=True,
    help="Task tag as key=value, e.g. webhook_start=https://example.com/hook. Repeatable.",
)
def publish(
    queue: str | None,
    backend: str | None,
    db_path: Path | None,
    body: str,
    tags: tuple[str, ...],
) -> None:
    """Enqueue a command line as a task."""

    try:
        lines = CONTROLLER.publish(
            PublishCommand(
                body=body,
                tags=_parse_tags(tags),
                queue_options=QueueOptions(queue=queue, backend=backend, db_path=db_path),
            ),
        )
    except ConfigurationError as error:
        raise click.UsageError(str(error)) from error
    _emit_lines(lines)


def _parse_tags(values: tuple[str, ...]) -> dict[str, str]:
    tags: dict[str, str] = {}
    for value in values:
        key, sep, tag_value = value.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected key=value, got {value!r}", param_hint="--tag")
        tags[key.strip()] = tag_value.strip()
    return tags


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    sonic()
