"""Sliding-window admission control for notification producers."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta

from aibos.core.types import Clock, utc_now


class RateLimiter:
    """Admits at most ``limit`` notifications per rolling ``window_ms``.

    Every admission costs one unit regardless of priority. Ledger entries older
    than the window are pruned lazily on each call to :meth:`admit`.
    """

    def __init__(self, limit: int = 10, window_ms: int = 60_000, clock: Clock = utc_now) -> None:
        self.limit = limit
        self.window_ms = window_ms
        self._window = timedelta(milliseconds=window_ms)
        self._clock = clock
        self._ledger: deque[datetime] = deque()

    def admit(self) -> bool:
        now = self._clock()
        self._prune(now)
        if len(self._ledger) >= self.limit:
            return False
        self._ledger.append(now)
        return True

    def remaining(self) -> int:
        self._prune(self._clock())
        return max(0, self.limit - len(self._ledger))

    def reset(self) -> None:
        self._ledger.clear()

    def _prune(self, now: datetime) -> None:
        while self._ledger and now - self._ledger[0] >= self._window:
            self._ledger.popleft()
