"""Per-client token-bucket rate limiting applied to every request."""

import asyncio
import ipaddress
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from .errors import RateLimitExceeded, error_response

logger = logging.getLogger(__name__)

IDLE_SECONDS = 300
CLEANUP_PROBABILITY = 0.01


@dataclass
class TokenBucket:
    tokens: float
    capacity: float
    refill_rate: float  # tokens per second
    last_refill: float

    @classmethod
    def full(cls, requests_per_minute: int, now: float) -> "TokenBucket":
        capacity = float(requests_per_minute)
        return cls(tokens=capacity, capacity=capacity, refill_rate=capacity / 60.0, last_refill=now)

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def try_consume(self, now: float) -> bool:
        self.refill(now)
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False


class RateLimiter:
    """
    One token bucket per client key, created on first sight.

    Buckets refill lazily when consulted; there is no timer. Idle buckets are
    evicted by an occasional sweep: each admitted request triggers one with
    probability ``cleanup_probability``.
    """

    def __init__(
        self,
        requests_per_minute: int,
        idle_seconds: float = IDLE_SECONDS,
        cleanup_probability: float = CLEANUP_PROBABILITY,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
    ):
        self.requests_per_minute = requests_per_minute
        self.idle_seconds = idle_seconds
        self.cleanup_probability = cleanup_probability
        self._clock = clock
        self._rng = rng
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = asyncio.Lock()

    async def admit(self, key: str) -> bool:
        async with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket.full(self.requests_per_minute, now)
                self._buckets[key] = bucket
            allowed = bucket.try_consume(now)

        if allowed and self._rng() < self.cleanup_probability:
            await self.sweep()
        return allowed

    async def sweep(self) -> int:
        """Evict buckets idle for longer than ``idle_seconds``. Returns the count."""
        async with self._lock:
            now = self._clock()
            stale = [k for k, b in self._buckets.items() if now - b.last_refill >= self.idle_seconds]
            for k in stale:
                del self._buckets[k]
        if stale:
            logger.debug(f"Evicted {len(stale)} idle rate-limit bucket(s)")
        return len(stale)

    async def tracked_clients(self) -> int:
        async with self._lock:
            return len(self._buckets)


def _is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """Client address used as the rate-limit key and in audit lines.

    Forwarded headers are only honoured when the service runs behind a proxy
    that sets them.
    """
    if trust_proxy_headers:
        real_ip = request.headers.get("x-real-ip", "").strip()
        if real_ip and _is_valid_ip(real_ip):
            return real_ip
        forwarded_for = request.headers.get("x-forwarded-for", "")
        first = forwarded_for.split(",", 1)[0].strip()
        if first and _is_valid_ip(first):
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests over the per-IP quota before any handler runs."""

    def __init__(self, app: ASGIApp, limiter: RateLimiter, trust_proxy_headers: bool = False) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.trust_proxy_headers = trust_proxy_headers

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        client_ip = get_client_ip(request, self.trust_proxy_headers)
        if not await self.limiter.admit(client_ip):
            logger.warning(f"Rate limit exceeded for IP: {client_ip} path={request.url.path}")
            return error_response(RateLimitExceeded.status_code, RateLimitExceeded.public_message)
        return await call_next(request)
