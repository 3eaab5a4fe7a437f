"""
AssetLogix - Rate Limiting
==========================
Token bucket rate limiting for the HTTP API.
"""

import time
from typing import Dict, Optional
from dataclasses import dataclass, field
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from logging_config import get_logger
import metrics as app_metrics

logger = get_logger(__name__)

EXEMPT_PATHS = {"/health", "/metrics", "/"}


@dataclass
class RateLimitBucket:
    """Token bucket for rate limiting."""
    capacity: int
    refill_rate: float  # tokens per second
    tokens: float = field(init=False)
    last_refill: float = field(init=False)

    def __post_init__(self):
        self.tokens = float(self.capacity)
        self.last_refill = time.monotonic()

    def refill(self):
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        """
        Try to consume tokens.

        Returns:
            True if tokens consumed, False if insufficient
        """
        self.refill()

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True

        return False

    def get_wait_time(self, tokens: int = 1) -> float:
        """Get time to wait for tokens to be available."""
        self.refill()

        if self.tokens >= tokens:
            return 0.0

        return (tokens - self.tokens) / self.refill_rate


class RateLimiter:
    """
    Token bucket rate limiter.

    Each client gets its own bucket; a global bucket sized at ten clients
    caps total throughput.
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        burst_size: Optional[int] = None,
    ):
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size or requests_per_minute
        self.refill_rate = requests_per_minute / 60.0

        self._buckets: Dict[str, RateLimitBucket] = {}
        self._global_bucket = RateLimitBucket(
            capacity=self.burst_size * 10,
            refill_rate=self.refill_rate * 10,
        )

    def _get_bucket(self, client_id: str) -> RateLimitBucket:
        """Get or create bucket for client."""
        if client_id not in self._buckets:
            self._buckets[client_id] = RateLimitBucket(
                capacity=self.burst_size,
                refill_rate=self.refill_rate,
            )

        return self._buckets[client_id]

    def check_rate_limit(self, client_id: str) -> tuple[bool, Optional[float]]:
        """
        Check if request is allowed under rate limits.

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if not self._global_bucket.consume():
            wait_time = self._global_bucket.get_wait_time()
            logger.warning("Global rate limit exceeded", wait_time=wait_time)
            app_metrics.rate_limited_requests_total.labels(scope="global").inc()
            return False, wait_time

        bucket = self._get_bucket(client_id)
        if not bucket.consume():
            wait_time = bucket.get_wait_time()
            logger.warning("Client rate limit exceeded", client_id=client_id, wait_time=wait_time)
            app_metrics.rate_limited_requests_total.labels(scope="client").inc()
            return False, wait_time

        return True, None

    def cleanup_stale_buckets(self, max_age: float = 3600.0) -> int:
        """Remove buckets for clients that haven't been seen recently."""
        now = time.monotonic()
        stale_clients = [
            client_id
            for client_id, bucket in self._buckets.items()
            if now - bucket.last_refill > max_age
        ]

        for client_id in stale_clients:
            del self._buckets[client_id]

        if stale_clients:
            logger.debug(f"Cleaned up {len(stale_clients)} stale rate limit buckets")
        return len(stale_clients)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware applying per-client and global limits."""

    def __init__(self, app, requests_per_minute: int = 60, burst_size: Optional[int] = None):
        super().__init__(app)
        self.limiter = RateLimiter(
            requests_per_minute=requests_per_minute,
            burst_size=burst_size,
        )
        self._last_cleanup = time.monotonic()

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_id = request.client.host if request.client else "unknown"

        allowed, retry_after = self.limiter.check_rate_limit(client_id)

        if not allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "error": {
                        "error_type": "RateLimitExceeded",
                        "message": "Rate limit exceeded",
                        "retry_after": round(retry_after or 0.0, 2),
                    },
                    "path": str(request.url.path),
                },
                headers={"Retry-After": str(int((retry_after or 0) + 1))},
            )

        now = time.monotonic()
        if now - self._last_cleanup > 300:
            self.limiter.cleanup_stale_buckets()
            self._last_cleanup = now

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.requests_per_minute)

        return response
