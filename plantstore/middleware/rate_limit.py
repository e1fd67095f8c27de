# plantstore/middleware/rate_limit.py
"""
Fixed-window, per-IP rate limiting.

Counters live in a store object handed to the middleware, so tests (or a
second worker type) can hold their own store and reset it between runs.
Requests are counted per route template, so ``/reset-password/{token}``
is one bucket however many tokens a client tries.
"""
import heapq
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from starlette import status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Match
from starlette.types import ASGIApp

from plantstore.auth.utils import get_client_ip
from plantstore.exceptions import RateLimitExceeded
from plantstore.observability import get_logger

logger = get_logger(__name__)

UNMATCHED_ROUTE = "<unmatched>"


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    prefix: str
    max_requests: int
    window_seconds: int
    message: str

    def matches(self, path: str) -> bool:
        return path.startswith(self.prefix)


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimitStore:
    """
    Thread-safe counters keyed by an arbitrary string; one window per key.

    Expired windows are dropped on the next hit. A heap ordered by reset
    time lets each hit evict them without scanning every key.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _Window] = {}
        self._expiry: list[tuple[float, str]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _evict_expired(self, now: float) -> None:
        while self._expiry and self._expiry[0][0] <= now:
            reset_at, key = heapq.heappop(self._expiry)
            window = self._windows.get(key)
            # a key reset by hand may already hold a newer window
            if window is not None and window.reset_at == reset_at:
                del self._windows[key]

    def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        """Count one request against ``key``. Returns (count, seconds until the window resets)."""
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            window = self._windows.get(key)
            if window is None:
                window = _Window(count=0, reset_at=now + window_seconds)
                self._windows[key] = window
                heapq.heappush(self._expiry, (window.reset_at, key))
            window.count += 1
            return window.count, window.reset_at - now

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def reset_all(self) -> None:
        with self._lock:
            self._windows.clear()
            self._expiry.clear()


def default_rules(settings) -> list[RateLimitRule]:
    return [
        RateLimitRule(
            name="auth",
            prefix="/api/auth/",
            max_requests=settings.AUTH_RATE_LIMIT_MAX,
            window_seconds=settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
            message="Too many login attempts from this IP, please try again after an hour",
        ),
        RateLimitRule(
            name="api",
            prefix="/api/",
            max_requests=settings.API_RATE_LIMIT_MAX,
            window_seconds=settings.API_RATE_LIMIT_WINDOW_SECONDS,
            message="Too many requests, please try again later",
        ),
    ]


def route_template(request: Request) -> str:
    """
    The path template of the route that will serve ``request``, picked the
    way the router picks it: first full match, else first partial match
    (right path, wrong method). Paths no route knows share one bucket.
    """
    partial = None
    for route in getattr(request.app, "routes", ()):
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return route.path
        if match == Match.PARTIAL and partial is None:
            partial = route.path
    return partial or UNMATCHED_ROUTE


def rate_limit_key(rule: RateLimitRule, ip: Optional[str], template: str) -> str:
    return f"{rule.name}:{ip or 'unknown'}:{template}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Every rule whose prefix matches the path counts the request; the first
    rule over its limit answers 429 and the request never reaches a route.
    """

    def __init__(self, app: ASGIApp, store: InMemoryRateLimitStore, rules: Sequence[RateLimitRule]) -> None:
        super().__init__(app)
        self.store = store
        self.rules = list(rules)

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        matching = [rule for rule in self.rules if rule.matches(path)]
        if not matching:
            return await call_next(request)

        ip = get_client_ip(request)
        template = route_template(request)
        exceeded: Optional[tuple[RateLimitRule, float]] = None
        for rule in matching:
            count, retry_after = self.store.hit(rate_limit_key(rule, ip, template), rule.window_seconds)
            if count > rule.max_requests and exceeded is None:
                exceeded = (rule, retry_after)

        if exceeded is not None:
            rule, retry_after = exceeded
            logger.warning(
                "rate_limit_exceeded", rule=rule.name, ip=ip, path=path, route=template, method=request.method
            )
            error = RateLimitExceeded(rule.message)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"message": error.message, "code": error.code},
                headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
            )
        return await call_next(request)
