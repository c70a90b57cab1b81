# classes/rate_limiter.py
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping

from classes import settings

logger = logging.getLogger("opsync_agent")


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds

    def reset_in_seconds(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        return max(0, math.ceil(self.reset_at - now))


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """
    Fixed-window, in-memory limit per caller id. The first request of a caller
    opens a window of window_seconds; at most max_requests fit in it.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check(self, caller_id: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            # expired windows are dropped at most once per window, from the request path
            if now - self._last_sweep >= self.window_seconds:
                self._sweep_locked(now)

            window = self._windows.get(caller_id)

            if window is None or now >= window.reset_at:
                window = _Window(count=1, reset_at=now + self.window_seconds)
                self._windows[caller_id] = window
                return RateLimitDecision(True, self.max_requests - 1, window.reset_at)

            if window.count >= self.max_requests:
                logger.info(f"Rate limit hit for {caller_id} ({window.count}/{self.max_requests})")
                return RateLimitDecision(False, 0, window.reset_at)

            window.count += 1
            return RateLimitDecision(True, self.max_requests - window.count, window.reset_at)

    def get_status(self, caller_id: str) -> RateLimitDecision:
        """Current standing without counting a request."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(caller_id)
            if window is None or now >= window.reset_at:
                return RateLimitDecision(True, self.max_requests, now + self.window_seconds)
            remaining = max(0, self.max_requests - window.count)
            return RateLimitDecision(remaining > 0, remaining, window.reset_at)

    def reset(self, caller_id: str) -> None:
        with self._lock:
            self._windows.pop(caller_id, None)

    def sweep_expired(self) -> int:
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [k for k, w in self._windows.items() if now >= w.reset_at]
        for k in expired:
            del self._windows[k]
        self._last_sweep = now
        if expired:
            logger.debug(f"Rate limiter sweep: removed {len(expired)} expired window(s)")
        return len(expired)


def get_client_ip(headers: Mapping[str, str]) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return "unknown"


AI_AGENT_RATE_LIMITER = RateLimiter(
    max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
)
