"""Error taxonomy for task handling."""

from __future__ import annotations


class SonicError(Exception):
    """Base class for bridge errors."""


class AbortSignaled(SonicError):
    """Start webhook answered 400: the receiver vetoed execution."""


class NotifyTransportFailed(SonicError):
    """Webhook unreachable, timed out, or answered with an unexpected status."""


class UnknownLifecycleEvent(SonicError, ValueError):
    """Lifecycle event outside of start/success/fail was requested."""


class ConfigurationError(SonicError, ValueError):
    """Startup configuration is missing or invalid."""


class ProcessFailed(SonicError):
    """Command missing, unspawnable, exited non-zero, or was cancelled."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        cancelled: bool = False,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.cancelled = cancelled
