"""
Fixed-window rate limiting for client-facing endpoints.

Two interchangeable backends share the same interface:

- InMemoryRateLimiter: per-process counters, lost on restart. Each running
  instance enforces its own limit.
- RedisRateLimiter: counters shared through Redis (RATE_LIMIT_BACKEND=redis).

Both use a fixed window that resets fully once it expires, so a burst that
straddles a window boundary can pass up to twice the limit.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from fastapi import Depends, Request
from fastapi.responses import JSONResponse

from .config import settings
from .redis import get_redis, make_key

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    max_requests: int
    window_seconds: int

    async def check(self, client_id: str) -> bool: ...

    async def record(self, client_id: str) -> None: ...

    async def hit(self, client_id: str) -> bool: ...

    async def sweep(self) -> int: ...


@dataclass
class RateLimitCounter:
    count: int
    window_start: float


class InMemoryRateLimiter:
    """Per-process fixed window limiter keyed by client identifier"""

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: int = 60,
        sweep_interval_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._counters: dict[str, RateLimitCounter] = {}
        self._last_sweep = clock()

    def _expired(self, counter: RateLimitCounter, now: float) -> bool:
        return now - counter.window_start >= self.window_seconds

    async def check(self, client_id: str) -> bool:
        """True if the client may issue another request in its current window"""
        counter = self._counters.get(client_id)
        if counter is None or self._expired(counter, self._clock()):
            return True
        return counter.count < self.max_requests

    async def record(self, client_id: str) -> None:
        now = self._clock()
        counter = self._counters.get(client_id)
        if counter is None or self._expired(counter, now):
            self._counters[client_id] = RateLimitCounter(count=1, window_start=now)
        else:
            counter.count += 1

    async def hit(self, client_id: str) -> bool:
        """Check and, when allowed, count one request. Rejected requests are not counted."""
        now = self._clock()
        if now - self._last_sweep >= self.sweep_interval_seconds:
            await self.sweep()

        if not await self.check(client_id):
            return False
        await self.record(client_id)
        return True

    async def sweep(self) -> int:
        """Evict counters whose window has expired"""
        now = self._clock()
        expired = [
            client_id
            for client_id, counter in self._counters.items()
            if self._expired(counter, now)
        ]
        for client_id in expired:
            del self._counters[client_id]
        self._last_sweep = now
        if expired:
            logger.debug(f"Rate limiter swept {len(expired)} expired clients")
        return len(expired)

    def __len__(self) -> int:
        return len(self._counters)


class RedisRateLimiter:
    """Fixed window limiter backed by a shared Redis counter per client"""

    def __init__(self, max_requests: int = 30, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def _make_key(self, client_id: str) -> str:
        return make_key("ratelimit", client_id)

    async def check(self, client_id: str) -> bool:
        client = await get_redis()
        value = await client.get(self._make_key(client_id))
        return value is None or int(value) < self.max_requests

    async def record(self, client_id: str) -> None:
        client = await get_redis()
        key = self._make_key(client_id)
        # The first request opens the window; the TTL is set together with
        # the key so a counter can never outlive its window. INCR keeps it.
        await client.set(key, 0, ex=self.window_seconds, nx=True)
        await client.incr(key)

    async def hit(self, client_id: str) -> bool:
        if not await self.check(client_id):
            return False
        await self.record(client_id)
        return True

    async def sweep(self) -> int:
        # Keys expire on their own
        return 0


def create_rate_limiter(backend: str | None = None) -> RateLimiter:
    backend = (backend or settings.rate_limit_backend).lower()
    if backend == "redis":
        return RedisRateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    if backend != "memory":
        raise ValueError(f"Unknown rate limit backend: {backend}")
    return InMemoryRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        sweep_interval_seconds=settings.rate_limit_sweep_interval_seconds,
    )


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter instance (FastAPI dependency)"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = create_rate_limiter()
    return _rate_limiter


def get_client_identifier(request: Request) -> str:
    """
    Extract client identifier for rate limiting.

    Uses the first X-Forwarded-For address when behind a proxy, then the
    peer address, then the x-client-info header sent by browser SDKs.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    client_info = request.headers.get("x-client-info")
    if client_info:
        return client_info

    return "unknown"


class RateLimitExceeded(Exception):
    """Client exceeded its request budget for the current window"""

    def __init__(self, client_id: str, limit: int, window_seconds: int):
        self.client_id = client_id
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(
            f"Rate limit of {limit} requests per {window_seconds}s exceeded"
        )


async def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """FastAPI dependency: count the request or raise RateLimitExceeded"""
    client_id = get_client_identifier(request)
    if not await limiter.hit(client_id):
        logger.warning(f"Rate limit exceeded for {client_id} on {request.url.path}")
        raise RateLimitExceeded(client_id, limiter.max_requests, limiter.window_seconds)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too Many Requests",
            "details": f"{exc}. Try again in {exc.window_seconds} seconds.",
        },
        headers={"Retry-After": str(exc.window_seconds)},
    )
