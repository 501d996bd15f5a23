"""Domain models for queued tasks and their handling verdicts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple

from sonic.errors import UnknownLifecycleEvent


class LifecycleEvent(str, Enum):
    """Task lifecycle points that can be reported to a webhook."""

    START = "start"
    SUCCESS = "success"
    FAIL = "fail"

    @property
    def tag_key(self) -> str:
        return _TAG_KEYS[self]

    @classmethod
    def parse(cls, value: object) -> LifecycleEvent:
        """Coerce a raw value into an event, rejecting anything unknown."""

        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as error:
            raise UnknownLifecycleEvent(f"Unknown lifecycle event: {value!r}") from error


_TAG_KEYS: dict[LifecycleEvent, str] = {
    LifecycleEvent.START: "webhook_start",
    LifecycleEvent.SUCCESS: "webhook_success",
    LifecycleEvent.FAIL: "webhook_fail",
}


class WebhookOutcome(str, Enum):
    """Classified result of one webhook notification."""

    SKIPPED = "skipped"
    ACKNOWLEDGED = "acknowledged"
    SERVER_FAILED = "server_failed"
    BAD_REQUEST = "bad_request"


@dataclass(slots=True, frozen=True)
class Task:
    """Unit of work delivered by a queue backend."""

    body: str
    tags: dict[str, str] = field(default_factory=dict)
    task_id: str | None = None

    def webhook_url(self, event: LifecycleEvent) -> str:
        return (self.tags.get(event.tag_key) or "").strip()

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready representation sent to webhooks."""

        payload: dict[str, Any] = {"body": self.body, "tags": dict(self.tags)}
        if self.task_id is not None:
            payload["id"] = self.task_id
        return payload


class HandlingVerdict(NamedTuple):
    """Decision returned to the queue backend for one delivery."""

    requeue: bool
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
