"""
Shared pytest fixtures and path setup for unit tests.
"""

import json
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from urllib.parse import parse_qs

# Add backend/src to sys.path so outlook_sync.* imports work when running pytest from repo root.
PROJECT_SRC = Path(__file__).resolve().parents[2]
if str(PROJECT_SRC) not in sys.path:
    sys.path.insert(0, str(PROJECT_SRC))

import httpx
import pytest

from outlook_sync.core.config import Settings
from outlook_sync.graph.client import GraphClient
from outlook_sync.providers.base_token_provider import StaticTokenProvider

TENANT = "contoso-tenant"
TOKEN_URL = f"https://login.microsoftonline.com/{TENANT}/oauth2/v2.0/token"


class FakeClock:
    """Controllable clock for token expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class MockGraph:
    """Records requests and answers them from a handler, via httpx.MockTransport."""

    def __init__(self, handler):
        self.handler = handler
        self.requests: list[httpx.Request] = []
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.handler(request)
        if hasattr(result, "__await__"):
            result = await result
        return result

    def form(self, index: int) -> dict[str, str]:
        """Decoded form body of the nth request."""
        parsed = parse_qs(self.requests[index].content.decode())
        return {k: v[0] for k, v in parsed.items()}

    def json(self, index: int):
        return json.loads(self.requests[index].content.decode())

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def methods(self) -> list[str]:
        return [r.method for r in self.requests]


def token_response(access_token: str, expires_in=3600, refresh_token: str | None = None) -> httpx.Response:
    body = {"token_type": "Bearer", "access_token": access_token}
    if expires_in is not None:
        body["expires_in"] = expires_in
    if refresh_token:
        body["refresh_token"] = refresh_token
    return httpx.Response(200, json=body)


def create_graph_message(
    msg_id="msg1",
    subject="Test Subject",
    sender_email="sender@example.com",
    received_datetime="2024-01-15T10:00:00Z",
    is_read=False,
    to=("recipient@example.com",),
    cc=(),
    bcc=(),
    body="<p>Full message body content</p>",
):
    """Create a Graph message resource for testing."""

    def recipients(addresses):
        return [{"emailAddress": {"name": a.split("@")[0].title(), "address": a}} for a in addresses]

    return {
        "id": msg_id,
        "subject": subject,
        "from": {"emailAddress": {"name": "Test Sender", "address": sender_email}},
        "toRecipients": recipients(to),
        "ccRecipients": recipients(cc),
        "bccRecipients": recipients(bcc),
        "body": {"contentType": "html", "content": body},
        "receivedDateTime": received_datetime,
        "isRead": is_read,
    }


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_graph():
    """Factory: mock_graph(handler) -> MockGraph."""
    return MockGraph


@pytest.fixture
def graph_message():
    return create_graph_message


@pytest.fixture
def make_token_response():
    return token_response


@pytest.fixture
def static_graph_client(settings):
    """Factory: build a GraphClient with a static bearer token over a MockGraph."""

    def _build(graph: MockGraph, token: str = "test_token_123") -> GraphClient:
        return GraphClient(StaticTokenProvider(token), http_client=graph.client, settings=settings)

    return _build


@pytest.fixture
def pooled_clients(monkeypatch):
    """Route clients built by HTTPClientManager through a MockTransport.

    Usage: ``created = pooled_clients(handler)``; ``created`` collects every
    AsyncClient the managers open.
    """
    real_async_client = httpx.AsyncClient

    def _install(handler):
        created = []

        def _factory(**kwargs):
            client = real_async_client(transport=httpx.MockTransport(handler), **kwargs)
            created.append(client)
            return client

        monkeypatch.setattr(httpx, "AsyncClient", _factory)
        return created

    return _install
