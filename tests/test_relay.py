"""
Relay tests: health, CORS allow-list, verb-mapped forwarding and the
read cache.
"""
import httpx
import pytest
from httpx import AsyncClient

from blogdata.cache import cache
from blogdata.config import settings
from blogdata.dependencies import get_upstream
from blogdata.main import app as relay_app
from blogdata.routers.relay import store_url
from tests.fake_store import FakeStore


class _MemoryRedis:
    """Just enough of the ``redis.asyncio`` API for ``RelayCache``."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value

    async def scan_iter(self, match=None):
        prefix = (match or "").rstrip("*")
        for key in list(self.store):
            if key.startswith(prefix):
                yield key

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/", "/health"])
async def test_health(relay_client: AsyncClient, fake_store: FakeStore, path: str):
    response = await relay_client.get(path)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["message"] == "Store relay is running"
    assert "T" in body["timestamp"]
    assert fake_store.calls == []


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_allowed_origin_is_echoed(relay_client: AsyncClient):
    origin = settings.ALLOWED_ORIGINS[1]
    response = await relay_client.get("/health", headers={"Origin": origin})
    assert response.headers["access-control-allow-origin"] == origin
    assert "Origin" in response.headers["vary"]


@pytest.mark.asyncio
async def test_unknown_origin_gets_first_allowed(relay_client: AsyncClient):
    response = await relay_client.get("/health", headers={"Origin": "https://evil.example.net"})
    assert response.headers["access-control-allow-origin"] == settings.ALLOWED_ORIGINS[0]


@pytest.mark.asyncio
async def test_preflight_short_circuits(relay_client: AsyncClient, fake_store: FakeStore):
    response = await relay_client.options("/comments", headers={"Origin": settings.ALLOWED_ORIGINS[0]})

    assert response.status_code == 204
    assert response.headers["access-control-max-age"] == "86400"
    assert "PATCH" in response.headers["access-control-allow-methods"]
    assert response.headers["access-control-allow-headers"] == "Content-Type, Authorization"
    assert fake_store.calls == []


# ---------------------------------------------------------------------------
# Forwarding
# ---------------------------------------------------------------------------

def test_store_url_appends_suffix_once(monkeypatch):
    monkeypatch.setattr(settings, "STORE_URL", "https://store.example.com/")
    assert store_url("articles/1") == "https://store.example.com/articles/1.json"
    assert store_url("/articles.json", "shallow=true") == "https://store.example.com/articles.json?shallow=true"


@pytest.mark.asyncio
async def test_verbs_are_forwarded(relay_client: AsyncClient, fake_store: FakeStore):
    put = await relay_client.put("/articles/1", json={"id": "1", "title": "T"})
    assert put.status_code == 200

    post = await relay_client.post("/comments", json={"id": "c1"})
    key = post.json()["name"]

    patch = await relay_client.patch("/articles/1", json={"title": "U"})
    assert patch.status_code == 200

    get = await relay_client.get("/articles/1")
    assert get.json() == {"id": "1", "title": "U"}

    delete = await relay_client.delete(f"/comments/{key}")
    assert delete.status_code == 200

    assert fake_store.calls == [
        ("PUT", "/articles/1.json"),
        ("POST", "/comments.json"),
        ("PATCH", "/articles/1.json"),
        ("GET", "/articles/1.json"),
        ("DELETE", f"/comments/{key}.json"),
    ]


@pytest.mark.asyncio
async def test_query_string_passes_through(relay_client: AsyncClient, fake_store: FakeStore):
    fake_store.data = {"articles": {"1": {"id": "1"}}}
    response = await relay_client.get("/articles", params={"shallow": "true"})
    assert response.json() == {"1": True}


@pytest.mark.asyncio
async def test_store_status_is_returned_unchanged(relay_client: AsyncClient, fake_store: FakeStore):
    fake_store.fail_deletes.add("k1")
    response = await relay_client.delete("/comments/k1")
    assert response.status_code == 503
    assert response.json() == {"error": "unavailable"}


@pytest.mark.asyncio
async def test_unreachable_store_is_500(relay_client: AsyncClient):
    def refuse(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    broken = AsyncClient(transport=httpx.MockTransport(refuse))
    relay_app.dependency_overrides[get_upstream] = lambda: broken
    try:
        response = await relay_client.get("/articles")
    finally:
        await broken.aclose()

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Proxy error"
    assert "connection refused" in body["message"]


@pytest.mark.asyncio
async def test_timing_header(relay_client: AsyncClient):
    response = await relay_client.get("/health")
    assert float(response.headers["x-response-time-ms"]) >= 0


# ---------------------------------------------------------------------------
# Read cache
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_reads_are_cached_until_a_write(relay_client: AsyncClient, fake_store: FakeStore):
    cache._redis = _MemoryRedis()
    try:
        fake_store.data = {"articles": {"1": {"id": "1"}}}

        first = await relay_client.get("/articles")
        second = await relay_client.get("/articles")
        assert first.json() == second.json()
        assert second.headers["x-relay-cache"] == "hit"
        assert fake_store.calls_for("GET") == ["/articles.json"]

        await relay_client.put("/articles/2", json={"id": "2"})
        third = await relay_client.get("/articles")
        assert "x-relay-cache" not in third.headers
        assert third.json() == {"1": {"id": "1"}, "2": {"id": "2"}}
    finally:
        cache._redis = None


@pytest.mark.asyncio
async def test_failed_reads_are_not_cached(relay_client: AsyncClient):
    upstream_calls = []

    def unavailable(request: httpx.Request):
        upstream_calls.append(request)
        return httpx.Response(503, json={"error": "unavailable"})

    cache._redis = memory = _MemoryRedis()
    broken = AsyncClient(transport=httpx.MockTransport(unavailable))
    relay_app.dependency_overrides[get_upstream] = lambda: broken
    try:
        for _ in range(2):
            response = await relay_client.get("/articles")
            assert response.status_code == 503
    finally:
        cache._redis = None
        await broken.aclose()

    assert memory.store == {}
    assert len(upstream_calls) == 2
