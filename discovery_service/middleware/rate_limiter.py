"""Fixed-window rate limiting keyed by client IP.

Two limiters guard the service:
- general: every route (default 60 requests / 60 s)
- scrape: /scrape only (default 10 requests / 60 s), since each scrape
  launches a browser

Counters live behind the CounterStore protocol so production wiring can point
at any atomic increment-with-expiry store; the default is in-process memory.
"""

import math
import time
from threading import Lock
from typing import Callable, Iterable, NamedTuple, Protocol

import logfire
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from discovery_service.config import get_settings
from discovery_service.logging_config import mask_client_ip

GENERAL_LIMIT_MESSAGE = "Too many requests, please try again later."
SCRAPE_LIMIT_MESSAGE = "Too many scraping requests, please try again later."

# Exposed to browsers through CORS
RATE_LIMIT_HEADERS = (
    "RateLimit-Limit",
    "RateLimit-Remaining",
    "RateLimit-Reset",
    "Retry-After",
)


class CounterStore(Protocol):
    """Atomic counter with expiry."""

    def increment(self, key: str, expire_seconds: int) -> int:
        """Increment ``key`` and return the new count.

        The key expires ``expire_seconds`` after it is first created.
        """
        ...


class InMemoryCounterStore:
    """Thread-safe in-memory CounterStore."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._counters: dict[str, tuple[int, float]] = {}
        self._clock = clock
        self._lock = Lock()

    def increment(self, key: str, expire_seconds: int) -> int:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            count, expires_at = self._counters.get(key, (0, now + expire_seconds))
            count += 1
            self._counters[key] = (count, expires_at)
            return count

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._counters.items() if expires_at <= now]
        for key in expired:
            del self._counters[key]

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)


class RateLimitDecision(NamedTuple):
    """Outcome of one counted request.

    Attributes:
        allowed: Whether the request is within the limit.
        limit: Maximum requests per window.
        remaining: Requests left in the current window.
        reset_after_seconds: Whole seconds until the window resets (>= 1).
    """

    allowed: bool
    limit: int
    remaining: int
    reset_after_seconds: int

    def headers(self) -> dict[str, str]:
        """Standard RateLimit-* headers (plus Retry-After when blocked)."""
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_after_seconds)
        return headers


class RateLimiter:
    """Fixed-window rate limiter.

    Windows are aligned to multiples of ``window_seconds`` on the clock, so
    every client's counter resets at the same boundary.
    """

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: int,
        store: CounterStore | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """Initialize rate limiter.

        Args:
            name: Key prefix separating this limiter's counters in the store.
            max_requests: Maximum allowed requests per window.
            window_seconds: Size of the fixed window in seconds.
            store: Counter store (defaults to a private in-memory store).
            clock: Wall clock used to pick the window (defaults to time.time).
        """
        self._name = name
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._store = store if store is not None else InMemoryCounterStore()
        self._clock = clock or time.time

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def hit(self, client_id: str) -> RateLimitDecision:
        """Count a request from ``client_id`` and decide whether it may proceed.

        Args:
            client_id: The client key (usually the IP address).

        Returns:
            RateLimitDecision for this request.
        """
        now = self._clock()
        window_index = int(now // self._window_seconds)
        key = f"ratelimit:{self._name}:{client_id}:{window_index}"

        count = self._store.increment(key, self._window_seconds)

        window_end = (window_index + 1) * self._window_seconds
        reset_after = max(1, math.ceil(window_end - now))
        allowed = count <= self._max_requests

        if not allowed:
            logfire.warning(
                "Rate limit exceeded",
                limiter=self._name,
                client=mask_client_ip(client_id),
                request_count=count,
                max_requests=self._max_requests,
                window_seconds=self._window_seconds,
            )

        return RateLimitDecision(
            allowed=allowed,
            limit=self._max_requests,
            remaining=max(0, self._max_requests - count),
            reset_after_seconds=reset_after,
        )


def client_key(request: Request, trust_forwarded_for: bool = False) -> str:
    """Identify the client of ``request`` for rate limiting."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply a RateLimiter to every request, or only to the given paths.

    The limiter is looked up per request through ``limiter_provider`` so the
    global instances can be reset (tests, config reload) without rebuilding
    the ASGI stack.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter_provider: Callable[[], RateLimiter],
        message: str = GENERAL_LIMIT_MESSAGE,
        paths: Iterable[str] | None = None,
    ):
        super().__init__(app)
        self._limiter_provider = limiter_provider
        self._message = message
        self._paths = frozenset(paths) if paths is not None else None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self._paths is not None and request.url.path not in self._paths:
            return await call_next(request)

        settings = get_settings()
        limiter = self._limiter_provider()
        decision = limiter.hit(client_key(request, settings.trust_forwarded_for))

        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": self._message,
                    "retryAfter": decision.reset_after_seconds,
                },
                headers=decision.headers(),
            )

        response = await call_next(request)
        # An inner, route-specific limiter has already reported its own counts
        for header, value in decision.headers().items():
            response.headers.setdefault(header, value)
        return response


# Global instances
_counter_store: InMemoryCounterStore | None = None
_general_limiter: RateLimiter | None = None
_scrape_limiter: RateLimiter | None = None


def get_counter_store() -> InMemoryCounterStore:
    """Get the process-wide counter store shared by both limiters."""
    global _counter_store
    if _counter_store is None:
        _counter_store = InMemoryCounterStore()
    return _counter_store


def get_general_rate_limiter() -> RateLimiter:
    """Get the global limiter applied to every route."""
    global _general_limiter
    if _general_limiter is None:
        settings = get_settings()
        _general_limiter = RateLimiter(
            name="general",
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
            store=get_counter_store(),
        )
    return _general_limiter


def get_scrape_rate_limiter() -> RateLimiter:
    """Get the global limiter applied to /scrape."""
    global _scrape_limiter
    if _scrape_limiter is None:
        settings = get_settings()
        _scrape_limiter = RateLimiter(
            name="scrape",
            max_requests=settings.scrape_rate_limit_max_requests,
            window_seconds=settings.scrape_rate_limit_window_seconds,
            store=get_counter_store(),
        )
    return _scrape_limiter


def reset_rate_limiters() -> None:
    """Reset the global limiters and their counters (primarily for testing)."""
    global _counter_store, _general_limiter, _scrape_limiter
    _counter_store = None
    _general_limiter = None
    _scrape_limiter = None
