"""Lifecycle webhook notifications declared on task tags."""

from __future__ import annotations

import logging

import httpx

from sonic import __version__
from sonic.models import LifecycleEvent, Task, WebhookOutcome

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = f"sonic/{__version__}"


def classify_status(status_code: int) -> WebhookOutcome:
    """Map an HTTP status to the control outcome used by the orchestrator."""

    if status_code == httpx.codes.BAD_REQUEST:
        return WebhookOutcome.BAD_REQUEST
    if 200 <= status_code < 300:
        return WebhookOutcome.ACKNOWLEDGED
    return WebhookOutcome.SERVER_FAILED


class WebhookNotifier:
    """POST the task payload to the URL named by the event's reserved tag."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"User-Agent": user_agent},
            transport=transport,
            follow_redirects=True,
        )

    def notify(self, event: LifecycleEvent, task: Task) -> WebhookOutcome:
        event = LifecycleEvent.parse(event)
        url = task.webhook_url(event)
        if not url:
            return WebhookOutcome.SKIPPED

        logger.info("Sending %s webhook to %s", event.value, url)
        try:
            response = self._client.post(url, json=task.to_payload())
        except httpx.TimeoutException:
            logger.warning("Timeout sending %s webhook to %s", event.value, url)
            return WebhookOutcome.SERVER_FAILED
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("HTTP error sending %s webhook to %s: %s", event.value, url, exc)
            return WebhookOutcome.SERVER_FAILED

        outcome = classify_status(response.status_code)
        logger.info(
            "Webhook %s answered %s (%s)",
            event.value,
            response.status_code,
            outcome.value,
        )
        return outcome

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> WebhookNotifier:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
