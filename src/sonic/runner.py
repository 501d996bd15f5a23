"""Subprocess runner bound to a cancellation token."""

from __future__ import annotations

import logging
import re
import subprocess

from sonic.cancellation import CancellationToken
from sonic.errors import ProcessFailed

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 0.1
DEFAULT_TERMINATE_GRACE_SECONDS = 2.0

_WHITESPACE = re.compile(r"\s+")


def split_command_line(command_line: str) -> tuple[str, list[str]]:
    """Split a command line on runs of whitespace into command and arguments.

    No shell features are interpreted: quotes, pipes and redirections are
    passed to the command verbatim.
    """

    parts = [part for part in _WHITESPACE.split(command_line.strip()) if part]
    if not parts:
        return "", []
    return parts[0], parts[1:]


class CommandRunner:
    """Run task bodies as child processes sharing the bridge's stdout/stderr."""

    def __init__(
        self,
        *,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        terminate_grace_seconds: float = DEFAULT_TERMINATE_GRACE_SECONDS,
    ) -> None:
        self.poll_seconds = poll_seconds
        self.terminate_grace_seconds = terminate_grace_seconds

    def run(self, token: CancellationToken, command_line: str) -> None:
        """Run the command to completion; raise ProcessFailed unless it exits 0."""

        command, args = split_command_line(command_line)
        if not command:
            raise ProcessFailed("Command not found: empty command line")
        if token.cancelled:
            raise ProcessFailed(f"Cancelled before start: {command}", cancelled=True)

        try:
            process = subprocess.Popen([command, *args])  # noqa: S603
        except FileNotFoundError as error:
            raise ProcessFailed(f"Command not found: {command}") from error
        except (OSError, ValueError) as error:
            # ValueError covers NUL bytes and unencodable surrogates in argv.
            raise ProcessFailed(f"Command failed to start: {command!r}: {error}") from error

        logger.debug("Started pid=%s command=%s", process.pid, command)
        while True:
            try:
                returncode = process.wait(timeout=self.poll_seconds)
                break
            except subprocess.TimeoutExpired:
                pass
            if token.cancelled:
                logger.warning("Terminating pid=%s: %s", process.pid, token.reason)
                _terminate_process(process, grace_seconds=self.terminate_grace_seconds)
                raise ProcessFailed(
                    f"Command cancelled: {command}",
                    exit_code=process.returncode,
                    cancelled=True,
                )

        if returncode != 0:
            raise ProcessFailed(
                f"Command exited with status {returncode}: {command}",
                exit_code=returncode,
            )


def _terminate_process(process: subprocess.Popen[bytes], *, grace_seconds: float) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=grace_seconds)
