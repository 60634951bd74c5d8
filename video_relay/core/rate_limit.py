"""In-process fixed-window rate limiting for the task creation routes."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from fastapi import Request

from video_relay.core.exceptions import AppException


class RateLimitExceeded(AppException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=429)


@dataclass(frozen=True)
class RateLimitResult:
    count: int
    limit: int
    reset_seconds: int


class RateLimiter:
    """
    Counts hits per key inside fixed windows aligned to the epoch.

    State lives in the process, which matches the single-process deployment;
    windows older than the current one are dropped on each hit.
    """

    def __init__(self, *, limit: int, window_seconds: int = 60, clock: Callable[[], float] = time.time):
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self._clock = clock
        self._counts: Dict[Tuple[str, int], int] = {}
        self._lock = asyncio.Lock()

    def _window_start(self, now: float) -> int:
        epoch = int(now)
        return (epoch // self.window_seconds) * self.window_seconds

    async def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        window_start = self._window_start(now)
        reset_seconds = max(0, int(window_start + self.window_seconds - now))

        async with self._lock:
            stale = [k for k in self._counts if k[1] != window_start]
            for k in stale:
                del self._counts[k]
            count = self._counts.get((key, window_start), 0) + 1
            self._counts[(key, window_start)] = count

        if count > self.limit:
            raise RateLimitExceeded(f"Rate limit exceeded. Try again in {reset_seconds} seconds.")

        return RateLimitResult(count=count, limit=self.limit, reset_seconds=reset_seconds)


async def enforce_creation_limit(request: Request) -> None:
    """Per-client-IP limit shared by the single and batch creation routes."""
    limiter: RateLimiter = request.app.state.rate_limiter
    ip = (request.client.host if request.client else "").strip() or "unknown"
    await limiter.hit(f"ip:{ip}:video_create")
