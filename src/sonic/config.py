"""Runtime configuration loaded from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from sonic.errors import ConfigurationError

SUPPORTED_BACKENDS = ("memory", "sqlite")


@dataclass(slots=True)
class QueueSettings:
    """Queue connection settings."""

    topic: str = ""
    backend: str = ""
    db_path: Path = Path(".sonic_queue.db")
    poll_interval_seconds: float = 0.5


@dataclass(slots=True)
class ExecutionSettings:
    """How deliveries are consumed and retried."""

    retry: bool = True
    single_shot: bool = False
    die_if_idle: bool = False
    max_idle_seconds: float = 300.0


@dataclass(slots=True)
class WebhookSettings:
    """Webhook transport settings."""

    timeout_seconds: float = 10.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    queue: QueueSettings = field(default_factory=QueueSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    webhooks: WebhookSettings = field(default_factory=WebhookSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from SONIC_* environment variables."""

        return cls(
            queue=QueueSettings(
                topic=os.getenv("SONIC_QUEUE", "").strip(),
                backend=os.getenv("SONIC_QUEUE_BACKEND", "").strip().lower(),
                db_path=Path(os.getenv("SONIC_DB_PATH", ".sonic_queue.db")),
                poll_interval_seconds=_env_float("SONIC_POLL_INTERVAL_SECONDS", 0.5),
            ),
            execution=ExecutionSettings(
                retry=_env_bool("SONIC_RETRY", default=True),
                single_shot=_env_bool("SONIC_SINGLE_SHOT", default=False),
                die_if_idle=_env_bool("SONIC_DIE_IF_IDLE", default=False),
                max_idle_seconds=_env_float("SONIC_MAX_IDLE_SECONDS", 300.0),
            ),
            webhooks=WebhookSettings(
                timeout_seconds=_env_float("SONIC_WEBHOOK_TIMEOUT_SECONDS", 10.0),
            ),
            log_level=os.getenv("SONIC_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )

    def validate(self) -> None:
        """Raise ConfigurationError if the bridge cannot start with these settings."""

        if not self.queue.topic:
            raise ConfigurationError("SONIC_QUEUE is required.")
        if not self.queue.backend:
            raise ConfigurationError("SONIC_QUEUE_BACKEND is required.")
        if self.queue.backend not in SUPPORTED_BACKENDS:
            raise ConfigurationError(
                f"Unsupported SONIC_QUEUE_BACKEND: {self.queue.backend!r}. "
                f"Expected one of: {', '.join(SUPPORTED_BACKENDS)}.",
            )
        if self.queue.poll_interval_seconds <= 0:
            raise ConfigurationError("SONIC_POLL_INTERVAL_SECONDS must be > 0.")
        if self.execution.max_idle_seconds <= 0:
            raise ConfigurationError("SONIC_MAX_IDLE_SECONDS must be > 0.")
        if self.webhooks.timeout_seconds <= 0:
            raise ConfigurationError("SONIC_WEBHOOK_TIMEOUT_SECONDS must be > 0.")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigurationError(f"Invalid SONIC_LOG_LEVEL: {self.log_level!r}")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ConfigurationError(f"Invalid number for {name}: {raw!r}") from error
