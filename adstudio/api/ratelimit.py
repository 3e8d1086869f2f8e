import math
import threading
import time
from collections.abc import Callable

from adstudio.core.errors import RateLimited


class FixedWindowLimiter:
    """Per-key request counter over fixed windows.

    Process local and reset on restart: this only blunts bursts against paid
    vendor APIs, correctness never depends on it.
    """

    def __init__(self, limit: int, window_seconds: int = 60, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = window_seconds
        self._clock = clock
        self._counters: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> int | None:
        """Count one request; returns seconds to wait when over the limit, else None."""
        with self._lock:
            now = self._clock()
            started, count = self._counters.get(key, (now, 0))
            if now - started >= self.window:
                started, count = now, 0
            if count >= self.limit:
                return max(1, math.ceil(self.window - (now - started)))
            self._counters[key] = (started, count + 1)
            self._evict(now)
            return None

    def check(self, key: str) -> None:
        retry_after = self.hit(key)
        if retry_after is not None:
            raise RateLimited(retry_after)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()

    def _evict(self, now: float) -> None:
        if len(self._counters) < 10_000:
            return
        expired = [k for k, (started, _) in self._counters.items() if now - started >= self.window]
        for key in expired:
            del self._counters[key]
