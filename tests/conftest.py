"""Shared pytest fixtures.

Provides:
- ``store``: fresh SQLite ``KnowledgeStore`` in a temp directory
- ``cache``: fresh ``MemoryCache``
- ``chat_server``: scriptable fake chat-completions upstream
- ``ai_http``: ``httpx.AsyncClient`` routed to ``chat_server``
- ``client``: API client with every dependency pointed at the above
"""

from __future__ import annotations

import json

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from services.cache import MemoryCache
from services.knowledge_store import KnowledgeStore


class FakeChatServer:
    """Answers chat-completions requests with ``reply`` (or ``status``)."""

    def __init__(self) -> None:
        self.reply = "What is the central idea of the material?"
        self.status = 200
        self.requests: list[httpx.Request] = []

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, text="upstream unavailable")
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": self.reply}}]},
        )


@pytest.fixture
def store(tmp_path) -> KnowledgeStore:
    return KnowledgeStore(tmp_path / "knowledge.db")


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache(ttl_seconds=300)


@pytest.fixture
def chat_server() -> FakeChatServer:
    return FakeChatServer()


@pytest.fixture
async def ai_http(chat_server):
    async with httpx.AsyncClient(transport=httpx.MockTransport(chat_server)) as http:
        yield http


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
async def client(store, cache, ai_http, upload_dir):
    from api import deps
    from main import app

    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_memory_cache] = lambda: cache
    app.dependency_overrides[deps.get_ai_http] = lambda: ai_http
    app.dependency_overrides[deps.get_upload_dir] = lambda: upload_dir
    app.dependency_overrides[deps.get_max_upload_bytes] = lambda: 64 * 1024

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
