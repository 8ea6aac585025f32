"""Rate limiting middleware tests (in-memory counter)."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import build_app
from helpdesk.middleware.rate_limit import MemoryCounter, RedisCounter


@pytest_asyncio.fixture()
async def limited_client():
    app = await build_app(
        rate_limit_auth_requests=3,
        rate_limit_requests=5,
        rate_limit_window_seconds=3600,
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.db.dispose()


@pytest.mark.asyncio
async def test_auth_bucket_limit(limited_client):
    body = {"email": "nobody@acme.com", "password": "password123"}
    for _ in range(3):
        r = await limited_client.post("/api/auth/login", json=body)
        assert r.status_code == 401
        assert r.headers["X-RateLimit-Limit"] == "3"

    r = await limited_client.post("/api/auth/login", json=body)
    assert r.status_code == 429
    assert r.json() == {
        "error": "Too many requests, please try again later",
        "code": "RATE_LIMITED",
    }
    assert int(r.headers["Retry-After"]) >= 1
    assert r.headers["X-RateLimit-Remaining"] == "0"
    # Rejections still carry the standard headers
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert "X-Request-ID" in r.headers


@pytest.mark.asyncio
async def test_buckets_are_independent(limited_client):
    """Exhausting the auth bucket doesn't block the rest of the API."""
    for _ in range(4):
        await limited_client.post("/api/auth/refresh", json={"refreshToken": "x"})

    r = await limited_client.get("/api/health")
    assert r.status_code == 200
    assert r.headers["X-RateLimit-Remaining"] == "4"


@pytest.mark.asyncio
async def test_general_bucket_limit(limited_client):
    for _ in range(5):
        assert (await limited_client.get("/api/health")).status_code == 200
    assert (await limited_client.get("/api/health")).status_code == 429


@pytest.mark.asyncio
async def test_memory_counter_resets_per_window():
    counter = MemoryCounter()
    assert await counter.hit("k", window=1, ttl=60) == 1
    assert await counter.hit("k", window=1, ttl=60) == 2
    assert await counter.hit("k", window=2, ttl=60) == 1


class _FakeRedis:
    def __init__(self):
        self.values = {}
        self.ttls = {}

    async def incr(self, key):
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key, ttl):
        self.ttls[key] = ttl


@pytest.mark.asyncio
async def test_redis_counter_sets_ttl_once():
    redis = _FakeRedis()
    counter = RedisCounter(redis)
    assert await counter.hit("k", window=1, ttl=120) == 1
    assert await counter.hit("k", window=1, ttl=120) == 2
    assert redis.ttls == {"k": 120}
