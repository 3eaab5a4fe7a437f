"""
Unit Tests - Rate Limiting
==========================
Token buckets, per-client limits and the HTTP middleware.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from rate_limiter import RateLimitBucket, RateLimiter, RateLimitMiddleware

pytestmark = pytest.mark.unit


class TestRateLimitBucket:

    def test_starts_full(self):
        bucket = RateLimitBucket(capacity=3, refill_rate=0.001)

        assert [bucket.consume() for _ in range(4)] == [True, True, True, False]

    def test_wait_time_when_empty(self):
        bucket = RateLimitBucket(capacity=1, refill_rate=0.5)
        bucket.consume()

        assert 0 < bucket.get_wait_time() <= 2.0


class TestRateLimiter:

    def test_clients_have_separate_buckets(self):
        limiter = RateLimiter(requests_per_minute=2)

        assert limiter.check_rate_limit("a")[0] is True
        assert limiter.check_rate_limit("a")[0] is True
        allowed, retry_after = limiter.check_rate_limit("a")

        assert allowed is False
        assert retry_after > 0
        assert limiter.check_rate_limit("b") == (True, None)

    def test_burst_size(self):
        limiter = RateLimiter(requests_per_minute=1, burst_size=3)

        results = [limiter.check_rate_limit("a")[0] for _ in range(4)]

        assert results == [True, True, True, False]

    def test_global_bucket_caps_all_clients(self):
        limiter = RateLimiter(requests_per_minute=1)

        results = [limiter.check_rate_limit(f"client-{i}")[0] for i in range(11)]

        assert results[:10] == [True] * 10
        assert results[10] is False

    def test_cleanup_stale_buckets(self):
        limiter = RateLimiter(requests_per_minute=10)
        limiter.check_rate_limit("a")
        limiter.check_rate_limit("b")

        assert limiter.cleanup_stale_buckets(max_age=3600) == 0
        assert limiter.cleanup_stale_buckets(max_age=-1) == 2


@pytest.fixture
def limited_client():
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, requests_per_minute=2)

    @app.get("/api/ping")
    async def ping():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return TestClient(app)


class TestRateLimitMiddleware:

    def test_limit_headers_and_429(self, limited_client):
        first = limited_client.get("/api/ping")
        limited_client.get("/api/ping")
        blocked = limited_client.get("/api/ping")

        assert first.headers["X-RateLimit-Limit"] == "2"
        assert blocked.status_code == 429
        assert int(blocked.headers["Retry-After"]) >= 1
        body = blocked.json()
        assert body["error"]["error_type"] == "RateLimitExceeded"
        assert body["path"] == "/api/ping"

    def test_health_is_exempt(self, limited_client):
        statuses = [limited_client.get("/health").status_code for _ in range(5)]
        assert statuses == [200] * 5
