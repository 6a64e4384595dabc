"""Per-client request rate limiting."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

from fastapi import HTTPException, Request, status

from prompt_api.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of a single rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: float

    def headers(self) -> dict[str, str]:
        reset = str(math.ceil(self.reset_after))
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": reset,
        }
        if not self.allowed:
            headers["Retry-After"] = reset
        return headers


class RateLimiter:
    """Sliding-window limiter keyed by client address.

    Each key keeps the timestamps of its accepted requests inside the current
    window. A request is rejected once the window already holds
    ``rate_limit_requests`` entries; rejected requests are not recorded.
    """

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.monotonic) -> None:
        self.enabled = settings.rate_limit_enabled
        self.limit = settings.rate_limit_requests
        self.window = float(settings.rate_limit_window_seconds)
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_prune = clock()

    def hit(self, key: str) -> RateLimitDecision:
        """Register a request for ``key`` and decide whether it may proceed."""
        now = self._clock()
        if now - self._last_prune >= self.window:
            self.prune()
        hits = self._hits.setdefault(key, deque())
        cutoff = now - self.window
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= self.limit:
            return RateLimitDecision(
                allowed=False,
                limit=self.limit,
                remaining=0,
                reset_after=hits[0] + self.window - now,
            )

        hits.append(now)
        return RateLimitDecision(
            allowed=True,
            limit=self.limit,
            remaining=self.limit - len(hits),
            reset_after=hits[0] + self.window - now,
        )

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)

    def prune(self) -> None:
        """Drop keys whose window holds no recent requests."""
        self._last_prune = self._clock()
        cutoff = self._last_prune - self.window
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency rejecting clients over their request budget.

    Raises:
        HTTPException: 429 when the client exceeded the configured budget
    """
    limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
    if limiter is None or not limiter.enabled:
        return

    key = client_key(request)
    decision = limiter.hit(key)
    request.state.rate_limit = decision
    if not decision.allowed:
        logger.warning("Rate limit exceeded for client %s on %s", key, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again later.",
            headers=decision.headers(),
        )
