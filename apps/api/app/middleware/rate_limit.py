from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.api.errors import error_response
from app.core.auth import token_user_id
from app.core.config import Settings, get_settings
from app.metrics import observe_rate_limited


logger = logging.getLogger("app.rate_limit")

WINDOW_SECONDS = 60
MUTATING_METHODS = frozenset({"POST", "PATCH", "PUT", "DELETE"})


@dataclass
class _Bucket:
    tokens: float
    last_refill: float


class MutationRateLimiter:
    """Token buckets keyed by CRM user id and mutation group.

    A bucket left alone for a whole window is back at capacity, which is the same as
    having no bucket, so idle buckets are dropped on a periodic sweep.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[tuple[int, str], _Bucket] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._buckets)

    def take(self, user_id: int, route_group: str, capacity: int, window_seconds: int = WINDOW_SECONDS) -> tuple[bool, int]:
        if capacity <= 0:
            return False, window_seconds

        now = self._clock()
        refill_rate = capacity / float(window_seconds)
        key = (user_id, route_group)

        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._evict_idle(now, window_seconds)

            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(tokens=float(capacity), last_refill=now)
                self._buckets[key] = bucket

            elapsed = max(0.0, now - bucket.last_refill)
            bucket.tokens = min(float(capacity), bucket.tokens + elapsed * refill_rate)
            bucket.last_refill = now

            if bucket.tokens < 1.0:
                return False, max(1, math.ceil((1.0 - bucket.tokens) / refill_rate))

            bucket.tokens -= 1.0
            return True, 0

    def _evict_idle(self, now: float, window_seconds: int) -> None:
        idle = [key for key, bucket in self._buckets.items() if now - bucket.last_refill >= window_seconds]
        for key in idle:
            del self._buckets[key]
        self._last_sweep = now

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._last_sweep = self._clock()


_limiter = MutationRateLimiter()


def mutation_group(path: str) -> str | None:
    """Map an API path to the mutation group its bucket is counted against."""

    parts = [part for part in path.split("/") if part]
    if len(parts) < 2 or parts[0] != "api":
        return None
    if parts[1] == "lien-rights" or "lien-rights" in parts[2:]:
        return "lien_rights"
    if parts[1] in {"jobs", "commissions", "history", "team"}:
        return parts[1]
    return "api"


def group_capacity(settings: Settings, route_group: str) -> int:
    if route_group == "commissions":
        return settings.rate_limit_commission_mutations_per_minute
    return settings.rate_limit_mutations_per_minute


class MutationRateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled or request.method.upper() not in MUTATING_METHODS:
            return await call_next(request)

        route_group = mutation_group(request.url.path)
        if route_group is None:
            return await call_next(request)

        # Unauthenticated mutations are rejected by the auth dependency.
        user_id = token_user_id(request)
        if user_id is None:
            return await call_next(request)

        allowed, retry_after = _limiter.take(user_id, route_group, group_capacity(settings, route_group))
        if allowed:
            return await call_next(request)

        observe_rate_limited(route_group)
        logger.info(
            "rate_limit.exceeded",
            extra={"actor_id": user_id, "route_group": route_group, "retry_after": retry_after},
        )
        response = error_response(
            request,
            status_code=429,
            code="rate_limited",
            message="Too many requests",
            details={"route_group": route_group, "retry_after": retry_after},
        )
        response.headers["Retry-After"] = str(retry_after)
        return response


def reset_rate_limiter() -> None:
    _limiter.clear()
