"""
Writegy Backend - Rate Limiting Middleware
============================================

What:  Token-bucket limiter for the grammar check endpoint.
How:   One bucket per client IP. A bucket holds `capacity` tokens and is
       refilled in full once per refill interval (interval refill, not
       gradual). Each request consumes one token; an empty bucket answers
       429 with the seconds left until the next refill.
Who:   Applied by create_app(); only LIMITED_PATHS are metered.

Headers:
    X-Rate-Limit-Remaining               tokens left after this request
    X-Rate-Limit-Retry-After-Seconds     on 429, seconds until refill
    Retry-After                          on 429, same value

CORS preflight (OPTIONS) requests are never metered.

Buckets live in process memory; multi-worker deployments meter each
worker separately. Every `cleanup_every` metered requests, buckets that are
full and unused for a whole refill interval are dropped.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.exceptions import RateLimitExceededError
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsumptionResult:
    consumed: bool
    remaining: int
    seconds_until_refill: int


class TokenBucket:
    """
    Fixed-capacity bucket with interval refill.

    Refill and consume happen atomically under a lock, so concurrent
    callers never lose or duplicate tokens.
    """

    def __init__(
        self,
        capacity: int,
        refill_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.capacity = capacity
        self.refill_seconds = refill_seconds
        self._clock = clock
        self._tokens = capacity
        self._last_refill = clock()
        self._last_used = self._last_refill
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_refill
        if elapsed >= self.refill_seconds:
            intervals = int(elapsed // self.refill_seconds)
            self._tokens = self.capacity
            self._last_refill += intervals * self.refill_seconds

    def try_consume(self, tokens: int = 1) -> ConsumptionResult:
        with self._lock:
            now = self._clock()
            self._refill(now)
            self._last_used = now
            wait = max(0, math.ceil(self._last_refill + self.refill_seconds - now))
            if self._tokens >= tokens:
                self._tokens -= tokens
                return ConsumptionResult(True, self._tokens, wait)
            return ConsumptionResult(False, self._tokens, wait)

    @property
    def available(self) -> int:
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def is_idle(self) -> bool:
        """Full, and not used for at least one refill interval."""
        with self._lock:
            now = self._clock()
            self._refill(now)
            return (
                self._tokens >= self.capacity
                and now - self._last_used >= self.refill_seconds
            )


def rate_limit_response(exc: RateLimitExceededError) -> JSONResponse:
    """429 in the application's error shape, with the retry headers."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": exc.message,
            "details": exc.context,
            "request_id": request_id_var.get(""),
        },
        headers={
            "Retry-After": str(exc.retry_after),
            "X-Rate-Limit-Retry-After-Seconds": str(exc.retry_after),
            "X-Rate-Limit-Remaining": "0",
        },
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Meters LIMITED_PATHS per client IP with TokenBucket."""

    LIMITED_PATHS = frozenset({"/api/grammar/check"})

    def __init__(
        self,
        app,
        capacity: Optional[int] = None,
        refill_seconds: Optional[float] = None,
        paths: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.monotonic,
        cleanup_every: int = 1000,
    ):
        super().__init__(app)
        self.capacity = capacity or settings.rate_limit_capacity
        self.refill_seconds = refill_seconds or settings.rate_limit_refill_seconds
        self.paths = frozenset(paths) if paths is not None else self.LIMITED_PATHS
        self.cleanup_every = cleanup_every
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._buckets_lock = threading.Lock()
        self._metered = 0

    def bucket_for(self, client_key: str) -> TokenBucket:
        with self._buckets_lock:
            bucket = self._buckets.get(client_key)
            if bucket is None:
                bucket = TokenBucket(self.capacity, self.refill_seconds, clock=self._clock)
                self._buckets[client_key] = bucket
            return bucket

    @property
    def tracked_clients(self) -> int:
        with self._buckets_lock:
            return len(self._buckets)

    def _cleanup_idle_buckets(self) -> int:
        """Drop buckets that would be recreated identical on next use."""
        with self._buckets_lock:
            idle = [key for key, bucket in self._buckets.items() if bucket.is_idle()]
            for key in idle:
                del self._buckets[key]
        if idle:
            logger.debug("Cleaned up %d idle rate-limit buckets", len(idle))
        return len(idle)

    def _count_metered_request(self) -> None:
        with self._buckets_lock:
            self._metered += 1
            due = self._metered % self.cleanup_every == 0
        if due:
            self._cleanup_idle_buckets()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method == "OPTIONS" or request.url.path not in self.paths:
            return await call_next(request)

        client_ip = (
            getattr(request.client, "host", "unknown")
            if request.client
            else "unknown"
        )
        outcome = self.bucket_for(client_ip).try_consume()
        self._count_metered_request()

        if not outcome.consumed:
            logger.warning(
                "Rate limit exceeded for IP %s on %s, retry in %ds",
                client_ip,
                request.url.path,
                outcome.seconds_until_refill,
            )
            return rate_limit_response(
                RateLimitExceededError(retry_after=outcome.seconds_until_refill)
            )

        response = await call_next(request)
        response.headers["X-Rate-Limit-Remaining"] = str(outcome.remaining)
        return response
