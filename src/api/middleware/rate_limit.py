"""
Per-client request rate limiting.

Counts requests per client IP in fixed windows. Counters live in an
:class:`ExpiringCounterStore` attached to ``app.state.rate_limit_store``;
expired windows are removed only by an explicit :meth:`~ExpiringCounterStore.sweep`
(run periodically by the application lifespan), so tests can control time
and reset state without touching module globals.
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.responses import error_response


@dataclass
class _Window:
    count: int
    reset_at: float


class ExpiringCounterStore:
    """Keyed hit counters that reset after *window_seconds*.

    Args:
        window_seconds: Length of one counting window.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(self, window_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def hit(self, key: str) -> tuple[int, float]:
        """Record one hit for *key*; return ``(count in window, seconds until reset)``."""
        now = self._clock()
        window = self._windows.get(key)
        if window is None or window.reset_at <= now:
            window = _Window(count=0, reset_at=now + self.window_seconds)
            self._windows[key] = window
        window.count += 1
        return window.count, window.reset_at - now

    def sweep(self, now: float | None = None) -> int:
        """Drop expired windows; return how many were removed."""
        now = self._clock() if now is None else now
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def reset(self) -> None:
        self._windows.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject clients that exceed ``max_requests`` per window with a 429."""

    _SKIP_PATHS = ("/api/health",)

    def __init__(self, app, max_requests: int) -> None:
        super().__init__(app)
        self.max_requests = max_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not path.startswith("/api/") or path in self._SKIP_PATHS:
            return await call_next(request)

        store: ExpiringCounterStore = request.app.state.rate_limit_store
        client_ip = request.client.host if request.client else "unknown"
        count, reset_in = store.hit(client_ip)
        remaining = max(self.max_requests - count, 0)

        if count > self.max_requests:
            retry_after = max(math.ceil(reset_in), 1)
            return error_response(
                429,
                "Too many requests from this IP, please try again later.",
                error="RATE_LIMITED",
                headers={"Retry-After": str(retry_after)},
                retryAfter=retry_after,
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
