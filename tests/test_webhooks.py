from __future__ import annotations

import json

import allure
import httpx
import pytest

from sonic.errors import UnknownLifecycleEvent
from sonic.models import LifecycleEvent, Task, WebhookOutcome
from sonic.webhooks import WebhookNotifier, classify_status

pytestmark = [
    allure.epic("Task Execution"),
    allure.feature("Webhook Notifier"),
]


def _notifier(handler) -> WebhookNotifier:
    return WebhookNotifier(transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (200, WebhookOutcome.ACKNOWLEDGED),
        (204, WebhookOutcome.ACKNOWLEDGED),
        (299, WebhookOutcome.ACKNOWLEDGED),
        (400, WebhookOutcome.BAD_REQUEST),
        (301, WebhookOutcome.SERVER_FAILED),
        (404, WebhookOutcome.SERVER_FAILED),
        (500, WebhookOutcome.SERVER_FAILED),
    ],
)
def test_classify_status(status: int, expected: WebhookOutcome) -> None:
    assert classify_status(status) is expected


def test_missing_tag_is_skipped_without_network_call() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    notifier = _notifier(handler)
    task = Task(body="pwd", tags={"webhook_success": "http://example.com/ok"})

    assert notifier.notify(LifecycleEvent.START, task) is WebhookOutcome.SKIPPED
    assert notifier.notify(LifecycleEvent.FAIL, Task(body="pwd")) is WebhookOutcome.SKIPPED
    assert calls == []


def test_empty_tag_is_skipped() -> None:
    notifier = _notifier(lambda request: httpx.Response(500))
    task = Task(body="pwd", tags={"webhook_start": ""})

    assert notifier.notify(LifecycleEvent.START, task) is WebhookOutcome.SKIPPED


def test_posts_json_task_payload_to_event_url() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    tags = {"webhook_start": "http://hooks.test/start", "owner": "billing"}
    task = Task(body="echo hi", tags=tags, task_id="t-1")

    outcome = _notifier(handler).notify(LifecycleEvent.START, task)

    assert outcome is WebhookOutcome.ACKNOWLEDGED
    assert len(seen) == 1
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://hooks.test/start"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"body": "echo hi", "tags": tags, "id": "t-1"}


@pytest.mark.parametrize("event", list(LifecycleEvent))
def test_bad_request_is_reported_for_every_event(event: LifecycleEvent) -> None:
    task = Task(body="pwd", tags={event.tag_key: "http://hooks.test/x"})

    outcome = _notifier(lambda request: httpx.Response(400)).notify(event, task)

    assert outcome is WebhookOutcome.BAD_REQUEST


def test_connect_error_is_server_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    task = Task(body="pwd", tags={"webhook_start": "http://hooks.test/down"})

    assert _notifier(handler).notify(LifecycleEvent.START, task) is WebhookOutcome.SERVER_FAILED


def test_timeout_is_server_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    task = Task(body="pwd", tags={"webhook_success": "http://hooks.test/slow"})

    assert _notifier(handler).notify(LifecycleEvent.SUCCESS, task) is WebhookOutcome.SERVER_FAILED


def test_malformed_url_is_server_failure() -> None:
    task = Task(body="", tags={"webhook_start": "http:/localhost"})

    with WebhookNotifier(timeout_seconds=2) as notifier:
        assert notifier.notify(LifecycleEvent.START, task) is WebhookOutcome.SERVER_FAILED


def test_refused_connection_is_server_failure(refused_url: str) -> None:
    task = Task(body="", tags={"webhook_start": refused_url})

    with WebhookNotifier(timeout_seconds=2) as notifier:
        assert notifier.notify(LifecycleEvent.START, task) is WebhookOutcome.SERVER_FAILED


def test_unknown_event_is_rejected() -> None:
    notifier = _notifier(lambda request: httpx.Response(200))

    with pytest.raises(UnknownLifecycleEvent):
        notifier.notify("finish", Task(body="pwd"))  # type: ignore[arg-type]


def test_event_strings_are_accepted() -> None:
    task = Task(body="pwd", tags={"webhook_fail": "http://hooks.test/fail"})

    outcome = _notifier(lambda request: httpx.Response(201)).notify("fail", task)  # type: ignore[arg-type]

    assert outcome is WebhookOutcome.ACKNOWLEDGED


def test_lifecycle_event_tag_keys() -> None:
    assert LifecycleEvent.START.tag_key == "webhook_start"
    assert LifecycleEvent.SUCCESS.tag_key == "webhook_success"
    assert LifecycleEvent.FAIL.tag_key == "webhook_fail"
    with pytest.raises(UnknownLifecycleEvent):
        LifecycleEvent.parse(-1)


@pytest.mark.parametrize("status", [301, 302, 307, 308])
def test_redirect_is_followed_to_final_response(status: int) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/old":
            return httpx.Response(status, headers={"Location": "http://hooks.test/new"})
        return httpx.Response(200)

    task = Task(body="pwd", tags={"webhook_start": "http://hooks.test/old"})

    with _notifier(handler) as notifier:
        outcome = notifier.notify(LifecycleEvent.START, task)

    assert outcome is WebhookOutcome.ACKNOWLEDGED
    assert seen == ["/old", "/new"]


def test_redirect_to_bad_request_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(302, headers={"Location": "/veto"})
        return httpx.Response(400)

    task = Task(body="pwd", tags={"webhook_start": "http://hooks.test/old"})

    with _notifier(handler) as notifier:
        assert notifier.notify(LifecycleEvent.START, task) is WebhookOutcome.BAD_REQUEST
