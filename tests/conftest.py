"""Shared fixtures for all tests."""

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from chet.core.config import build_model_registry


class FakeUpstream:
    """Stands in for a streaming httpx.Response."""

    def __init__(self, chunks, error: Exception | None = None, status_code: int = 200,
                 content_type: str = "text/event-stream"):
        self.chunks = list(chunks)
        self.error = error
        self.status_code = status_code
        self.headers = {"content-type": content_type}
        self.reads = 0
        self.closed = False

    async def aiter_bytes(self):
        for chunk in self.chunks:
            self.reads += 1
            yield chunk
        if self.error:
            raise self.error

    async def aclose(self):
        self.closed = True


class FakeAdapter:
    """Records provider calls and returns a canned upstream."""

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.upstream = FakeUpstream([
            b'data: {"response":"Hel"}\n\n',
            b'data: {"response":"lo"}\n\n',
            b"data: [DONE]\n\n",
        ])
        self.error: Exception | None = None

    def is_healthy(self) -> bool:
        return True

    async def stream(self, model_id: str, payload: dict):
        self.calls.append((model_id, payload))
        if self.error:
            raise self.error
        return self.upstream

    async def aclose(self):
        pass


@pytest.fixture
def models():
    return build_model_registry()


@pytest.fixture
def upstream_factory():
    return FakeUpstream


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def make_request():
    """Build a bare Starlette request with an unread body."""
    def _make(body: bytes | str, headers: dict | None = None, query_string: str = "") -> Request:
        if isinstance(body, str):
            body = body.encode("utf-8")
        scope = {
            "type": "http",
            "method": "POST",
            "path": "/api/chat",
            "headers": [(k.lower().encode("latin-1"), v.encode("latin-1"))
                        for k, v in (headers or {}).items()],
            "query_string": query_string.encode("latin-1"),
        }

        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        return Request(scope, receive)
    return _make


@pytest.fixture
def client(monkeypatch, fake_adapter):
    """TestClient over the real app with an in-memory KV store and a fake provider."""
    monkeypatch.setenv("KV_DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.delenv("ENVIRONMENT", raising=False)

    from chet.main import app

    with TestClient(app) as test_client:
        real_adapter = app.state.llm_adapter
        app.state.llm_adapter = fake_adapter
        yield test_client
        app.state.llm_adapter = real_adapter
