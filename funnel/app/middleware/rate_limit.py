"""
Lead Funnel Rate Limiting
Sliding-window limits applied per route group as FastAPI dependencies
"""

import time
from typing import Dict, Optional
from collections import deque
from fastapi import Request, HTTPException, status
import structlog

from ..core.config import settings

logger = structlog.get_logger()


class InMemoryRateLimiter:
    """Simple in-memory rate limiter using sliding window

    Keys whose window has fully elapsed are dropped, so idle clients do not
    accumulate.
    """

    sweep_interval = 60

    def __init__(self):
        self.requests: Dict[str, deque] = {}
        self.windows: Dict[str, int] = {}
        self._last_sweep = time.time()

    def _prune(self, key: str, window: int, now: float) -> deque:
        hits = self.requests.get(key)
        if hits is None:
            return deque()

        window_start = now - window
        while hits and hits[0] < window_start:
            hits.popleft()
        if not hits:
            self._forget(key)
        return hits

    def _forget(self, key: str):
        self.requests.pop(key, None)
        self.windows.pop(key, None)

    def _sweep(self, now: float):
        if now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        for key in list(self.requests):
            self._prune(key, self.windows.get(key, 0), now)

    def is_allowed(self, key: str, limit: int, window: int) -> bool:
        """Check if request is allowed within rate limit"""
        now = time.time()
        self._sweep(now)

        if len(self._prune(key, window, now)) >= limit:
            return False

        self.requests.setdefault(key, deque()).append(now)
        self.windows[key] = window
        return True

    def get_remaining(self, key: str, limit: int, window: int) -> int:
        """Get remaining requests in the current window"""
        return max(0, limit - len(self._prune(key, window, time.time())))

    def get_reset_time(self, key: str, window: int) -> Optional[float]:
        """Get when the rate limit resets"""
        hits = self.requests.get(key)
        if not hits:
            return None
        return hits[0] + window

    def reset(self):
        self.requests.clear()
        self.windows.clear()
        self._last_sweep = time.time()


limiter = InMemoryRateLimiter()


def get_client_id(request: Request) -> str:
    """Client identifier for rate limiting"""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return f"ip:{forwarded_for.split(',')[0].strip()}"

    client_host = getattr(request.client, "host", "unknown")
    return f"ip:{client_host}"


def rate_limit(scope: str, limit: int, window: int, message: str):
    """Build a dependency enforcing `limit` requests per `window` seconds"""

    async def dependency(request: Request):
        if not settings.rate_limit_enabled:
            return

        key = f"{scope}:{get_client_id(request)}"
        if limiter.is_allowed(key, limit, window):
            return

        logger.warning(
            "Rate limit exceeded",
            scope=scope,
            client_id=key,
            path=request.url.path,
            method=request.method,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=message,
            headers={
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(int(limiter.get_reset_time(key, window) or time.time())),
            },
        )

    return dependency


chatbot_rate_limit = rate_limit("chatbot", 30, 60, "Too many chatbot interactions, please slow down")
email_rate_limit = rate_limit("email", 10, 3600, "Too many email actions, please try again later")
booking_rate_limit = rate_limit("booking", 3, 900, "Too many booking attempts, please try again later")
