"""Per-client fixed-window request limits, used as route dependencies."""

import logging
import time
from threading import Lock
from typing import Callable

from fastapi import Request

from backend.core import config
from backend.core.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: int,
        message: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self.clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = Lock()
        self._last_pruned = clock()

    def _prune(self, now: float) -> None:
        # At most one sweep per window length.
        if now - self._last_pruned < self.window_seconds:
            return
        self._windows = {
            key: (started, count)
            for key, (started, count) in self._windows.items()
            if now - started < self.window_seconds
        }
        self._last_pruned = now

    def hit(self, key: str) -> bool:
        """Count one request for ``key``; False once the window is used up."""
        with self._lock:
            now = self.clock()
            self._prune(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0

            if count >= self.max_requests:
                self._windows[key] = (started, count)
                return False

            self._windows[key] = (started, count + 1)
            return True

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    async def __call__(self, request: Request) -> None:
        if not config.RATE_LIMIT_ENABLED:
            return

        client = request.client.host if request.client else "unknown"
        if not self.hit(client):
            logger.warning("Rate limit '%s' exceeded by %s", self.name, client)
            raise RateLimitError(self.message)


general_limiter = RateLimiter(
    "general",
    config.RATE_LIMIT_GENERAL_MAX,
    config.RATE_LIMIT_WINDOW_SECONDS,
    "Too many requests from this IP, please try again later",
)

auth_limiter = RateLimiter(
    "auth",
    config.RATE_LIMIT_AUTH_MAX,
    config.RATE_LIMIT_WINDOW_SECONDS,
    "Too many authentication attempts, please try again after 15 minutes",
)

strict_limiter = RateLimiter(
    "strict",
    config.RATE_LIMIT_STRICT_MAX,
    config.RATE_LIMIT_WINDOW_SECONDS,
    "Too many requests, please slow down",
)


def reset_all() -> None:
    for limiter in (general_limiter, auth_limiter, strict_limiter):
        limiter.reset()
