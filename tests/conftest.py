"""Shared test fixtures."""

from __future__ import annotations

import json
import socket
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

_SONIC_ENV = (
    "SONIC_QUEUE",
    "SONIC_QUEUE_BACKEND",
    "SONIC_RETRY",
    "SONIC_SINGLE_SHOT",
    "SONIC_DIE_IF_IDLE",
    "SONIC_MAX_IDLE_SECONDS",
    "SONIC_WEBHOOK_TIMEOUT_SECONDS",
    "SONIC_DB_PATH",
    "SONIC_POLL_INTERVAL_SECONDS",
    "SONIC_LOG_LEVEL",
)


@dataclass(slots=True)
class WebhookRequest:
    path: str
    content_type: str
    payload: dict


@dataclass
class WebhookServer:
    """Local HTTP server answering POSTs with a status configured per path."""

    base_url: str = ""
    statuses: dict[str, int] = field(default_factory=dict)
    requests: list[WebhookRequest] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def url(self, path: str, status: int = 200) -> str:
        self.statuses[path] = status
        return f"{self.base_url}{path}"

    def calls(self, path: str) -> list[WebhookRequest]:
        with self.lock:
            return [request for request in self.requests if request.path == path]


@pytest.fixture(autouse=True)
def _clean_sonic_env(monkeypatch) -> None:
    for name in _SONIC_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def webhook_server() -> Iterator[WebhookServer]:
    state = WebhookServer()

    class _Handler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:  # noqa: N802
            length = int(self.headers.get("Content-Length", "0"))
            raw = self.rfile.read(length)
            with state.lock:
                state.requests.append(
                    WebhookRequest(
                        path=self.path,
                        content_type=self.headers.get("Content-Type", ""),
                        payload=json.loads(raw or b"{}"),
                    ),
                )
            self.send_response(state.statuses.get(self.path, 404))
            self.send_header("Content-Length", "0")
            self.end_headers()

        def log_message(self, *_: object) -> None:
            return

    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    host, port = server.server_address[:2]
    state.base_url = f"http://{host}:{port}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield state
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture()
def refused_url() -> str:
    """URL of a local port with nothing listening on it."""

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/hook"
