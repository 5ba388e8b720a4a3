"""
Rate limiting middleware and utilities.

Disabled by default; enable with ``RATE_LIMIT_ENABLED=true``. Limits are
per client address, which honours ``X-Forwarded-For`` when uvicorn runs with
proxy headers.
"""

import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request, status
from fastapi.responses import JSONResponse

from job_bridge.types.api import ErrorResponse

# Paths never rate limited
EXEMPT_PATHS = frozenset({"/health", "/ready", "/live", "/metrics", "/docs", "/openapi.json"})


@dataclass
class TokenBucket:
    """
    Token bucket for rate limiting.

    Implements a simple token bucket algorithm for per-client rate limiting.
    """

    capacity: float
    tokens: float
    refill_rate: float  # tokens per second
    last_refill: float

    def consume(self, tokens: float = 1.0) -> bool:
        """
        Try to consume tokens from the bucket.

        Args:
            tokens: Number of tokens to consume.

        Returns:
            True if tokens were consumed, False if rate limited.
        """
        now = time.time()

        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True

        return False

    def is_full(self, now: float) -> bool:
        """True if the bucket would be back at capacity by ``now``."""
        return self.tokens + (now - self.last_refill) * self.refill_rate >= self.capacity

    @property
    def wait_time(self) -> float:
        """Time in seconds until at least 1 token is available."""
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.refill_rate


class RateLimiter:
    """
    In-memory rate limiter using token buckets.

    Each API process keeps its own buckets, so the effective limit scales
    with the number of producer processes.
    """

    def __init__(
        self,
        requests_per_minute: int = 1000,
        burst_capacity: int | None = None,
        sweep_interval_seconds: float = 60.0,
    ):
        """
        Initialize the rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute per client.
            burst_capacity: Maximum burst size. Defaults to the per-minute rate.
            sweep_interval_seconds: How often buckets that have refilled
                completely are dropped. A dropped bucket is recreated full,
                so eviction never changes a decision.
        """
        self._refill_rate = requests_per_minute / 60.0
        self._capacity = burst_capacity or requests_per_minute
        self._buckets: dict[str, TokenBucket] = defaultdict(self._create_bucket)
        self._sweep_interval = sweep_interval_seconds
        self._last_sweep = time.time()

    def _create_bucket(self) -> TokenBucket:
        return TokenBucket(
            capacity=self._capacity,
            tokens=self._capacity,
            refill_rate=self._refill_rate,
            last_refill=time.time(),
        )

    def check(self, key: str, tokens: float = 1.0) -> tuple[bool, float]:
        """
        Check if a request is allowed.

        Args:
            key: Rate limit key (the client address).
            tokens: Number of tokens to consume.

        Returns:
            Tuple of (allowed, wait_time_seconds).
        """
        now = time.time()
        if now - self._last_sweep >= self._sweep_interval:
            self._evict_idle(now)

        bucket = self._buckets[key]
        allowed = bucket.consume(tokens)
        return allowed, bucket.wait_time

    def reset(self, key: str) -> None:
        """Reset rate limit for a key."""
        self._buckets.pop(key, None)

    def _evict_idle(self, now: float) -> None:
        idle = [key for key, bucket in self._buckets.items() if bucket.is_full(now)]
        for key in idle:
            del self._buckets[key]
        self._last_sweep = now

    def __len__(self) -> int:
        """Number of clients currently tracked."""
        return len(self._buckets)


def client_key(request: Request) -> str:
    """Rate limit key for a request."""
    return request.client.host if request.client else "anonymous"


def create_rate_limit_middleware(
    app_instance: Callable,
    limiter: RateLimiter | None = None,
) -> Callable:
    """
    Create rate limiting middleware for FastAPI.

    Args:
        app_instance: The FastAPI application.
        limiter: Limiter to use. Built from settings by default.

    Returns:
        The middleware function.
    """
    if limiter is None:
        from job_bridge.config import get_settings
        limiter = RateLimiter(
            requests_per_minute=get_settings().rate_limit_requests_per_minute
        )

    async def rate_limit_middleware(request: Request, call_next: Callable):
        """Middleware to apply rate limiting."""
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        allowed, wait_time = limiter.check(client_key(request))
        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=ErrorResponse(
                    error="Rate limit exceeded",
                    detail=f"Retry after {wait_time:.1f} seconds",
                ).model_dump(),
                headers={"Retry-After": str(int(wait_time) + 1)},
            )

        return await call_next(request)

    return rate_limit_middleware
