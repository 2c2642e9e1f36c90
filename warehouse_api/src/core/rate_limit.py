from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict

from src.core.errors import RateLimitError
from src.core.settings import get_app_settings

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    started_at: float
    count: int


class RateLimiter:
    """
    In-memory fixed-window limiter.

    Each key gets `limit` hits per `window_seconds`. State is per process.
    """

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._pruned_at = clock()
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def _prune(self, now: float) -> None:
        # at most one sweep per window
        if now - self._pruned_at < self.window_seconds:
            return
        expired = [key for key, w in self._windows.items() if now - w.started_at >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._pruned_at = now

    # PUBLIC_INTERFACE
    def hit(self, key: str) -> None:
        """
        Register one attempt for key.

        Raises:
            RateLimitError: when the key exceeded its allowance in the current window.
        """
        now = self._clock()
        with self._lock:
            self._prune(now)
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(started_at=now, count=0)
                self._windows[key] = window
            window.count += 1
            if window.count > self.limit:
                retry_after = max(1, math.ceil(self.window_seconds - (now - window.started_at)))
                logger.warning("Rate limit exceeded for key=%s", key)
                raise RateLimitError(retry_after=retry_after)

    # PUBLIC_INTERFACE
    def reset(self, key: str) -> None:
        """Forget attempts for key, e.g. after a successful login."""
        with self._lock:
            self._windows.pop(key, None)


_settings = get_app_settings()
login_rate_limiter = RateLimiter(
    limit=_settings.LOGIN_RATE_LIMIT_ATTEMPTS,
    window_seconds=_settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
)
