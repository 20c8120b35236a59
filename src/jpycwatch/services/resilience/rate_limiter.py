"""Sliding-window rate limiter keyed per upstream source.

Each key (one per chain RPC, explorer, holder index ...) owns an
independent window, so exhausting one source never throttles another.

Example:
    ```python
    limiter = SlidingWindowRateLimiter(max_requests=10, window_seconds=1.0)
    decision = limiter.try_acquire("Ethereum")
    if not decision.allowed:
        await asyncio.sleep(decision.retry_after)
    ```
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from jpycwatch.config.settings import get_settings
from jpycwatch.constants.resilience import RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from jpycwatch.core.exceptions import RateLimitExceededError

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RateLimitWindow:
    """Request timestamps of one key inside the trailing window."""

    timestamps: list[float] = field(default_factory=list)
    reset_time: float = 0.0


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window.
        reset_time: Epoch seconds at which the window resets.
        retry_after: Seconds until the oldest request leaves the window
            (only set when denied).
    """

    allowed: bool
    remaining: int
    reset_time: float
    retry_after: float | None = None


class SlidingWindowRateLimiter:
    """Per-key sliding-window admission control.

    Attributes:
        max_requests: Requests admitted per window and key.
        window_seconds: Window length in seconds.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}

    def _window(self, key: str, now: float) -> RateLimitWindow:
        window = self._windows.get(key)
        if window is None or now >= window.reset_time:
            window = RateLimitWindow(reset_time=now + self.window_seconds)
            self._windows[key] = window
            return window

        cutoff = now - self.window_seconds
        window.timestamps = [ts for ts in window.timestamps if ts > cutoff]
        return window

    def try_acquire(self, key: str) -> RateLimitDecision:
        """Check admission for ``key`` and record the request when allowed."""
        now = self._clock()
        window = self._window(key, now)

        if len(window.timestamps) < self.max_requests:
            window.timestamps.append(now)
            if len(window.timestamps) == 1:
                window.reset_time = now + self.window_seconds
            return RateLimitDecision(
                allowed=True,
                remaining=self.max_requests - len(window.timestamps),
                reset_time=window.reset_time,
            )

        oldest = window.timestamps[0]
        retry_after = max(oldest + self.window_seconds - now, 0.0)
        log.debug("rate_limit_denied", key=key, retry_after=round(retry_after, 3))
        return RateLimitDecision(
            allowed=False,
            remaining=0,
            reset_time=window.reset_time,
            retry_after=retry_after,
        )

    async def acquire(self, key: str) -> None:
        """Wait until a request for ``key`` is admitted."""
        while True:
            decision = self.try_acquire(key)
            if decision.allowed:
                return
            log.debug(
                "rate_limit_throttling",
                key=key,
                sleep_ms=int((decision.retry_after or 0.0) * 1000),
            )
            await asyncio.sleep(decision.retry_after or 0.0)

    def get_stats(self, key: str) -> dict[str, float | int]:
        """Current usage of ``key`` without recording a request."""
        now = self._clock()
        window = self._window(key, now)
        return {
            "count": len(window.timestamps),
            "remaining": max(self.max_requests - len(window.timestamps), 0),
            "reset_time": window.reset_time,
        }

    def reset(self, key: str) -> None:
        """Forget the history of one key."""
        self._windows.pop(key, None)

    def reset_all(self) -> None:
        """Forget every key."""
        self._windows.clear()


async def enforce_rate_limit(
    limiter: SlidingWindowRateLimiter,
    key: str,
    fn: Callable[[], Awaitable[T]],
) -> T:
    """Run ``fn`` if ``key`` has capacity.

    Raises:
        RateLimitExceededError: If the limiter denies the request.
    """
    decision = limiter.try_acquire(key)
    if not decision.allowed:
        raise RateLimitExceededError(
            key=key,
            retry_after=decision.retry_after or 0.0,
            reset_time=decision.reset_time,
        )
    return await fn()


_rate_limiter: SlidingWindowRateLimiter | None = None


def get_rate_limiter() -> SlidingWindowRateLimiter:
    """Get or create the limiter shared by every upstream client."""
    global _rate_limiter

    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = SlidingWindowRateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
        log.info(
            "rate_limiter_initialized",
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )

    return _rate_limiter


def reset_rate_limiter() -> None:
    """Reset the singleton (for testing)."""
    global _rate_limiter
    _rate_limiter = None
