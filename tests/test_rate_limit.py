"""Tests for the credential endpoint rate limiter."""
from fastapi import FastAPI
from fastapi.testclient import TestClient
import redis

from orgauth.middleware.rate_limit import RateLimitMiddleware


class FakeRedis:
    """The two commands the limiter uses, backed by a dict. TTLs are ignored."""

    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = str(value)


class BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("down")

    def setex(self, key, ttl, value):
        raise redis.ConnectionError("down")


def build_app(redis_client, burst=2, enabled=True):
    app = FastAPI()
    app.add_middleware(
        RateLimitMiddleware,
        redis_client=redis_client,
        limited_paths=("/sign-in",),
        rate_per_minute=1,
        burst=burst,
        enabled=enabled,
    )

    @app.post("/sign-in")
    def limited():
        return {"ok": True}

    @app.post("/other")
    def unlimited():
        return {"ok": True}

    return TestClient(app)


def test_burst_then_429_with_retry_after():
    client = build_app(FakeRedis())

    statuses = [client.post("/sign-in").status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
    blocked = client.post("/sign-in")
    assert blocked.json()["type"] == "rate_limit_exceeded"
    assert int(blocked.headers["Retry-After"]) >= 1


def test_unlisted_paths_are_not_limited():
    client = build_app(FakeRedis(), burst=1)

    assert all(client.post("/other").status_code == 200 for _ in range(5))


def test_bucket_key_includes_path():
    fake = FakeRedis()
    client = build_app(fake, burst=1)
    client.post("/sign-in")

    assert client.post("/sign-in").status_code == 429
    assert any(key.endswith(":/sign-in") for key in fake.data)


def test_redis_errors_fail_open():
    client = build_app(BrokenRedis(), burst=1)

    assert all(client.post("/sign-in").status_code == 200 for _ in range(3))


def test_disabled_limiter_passes_everything():
    client = build_app(FakeRedis(), burst=1, enabled=False)

    assert all(client.post("/sign-in").status_code == 200 for _ in range(3))
