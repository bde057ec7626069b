from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in_seconds: int


class FixedWindowRateLimiter:
    """
    In-memory fixed-window rate limiter.

    Notes:
    - Best-effort (per-process). Multiple workers each keep their own windows.
    - One limiter instance serves one policy; callers namespace keys
      ("upload:<user>", "api:<ip>") so policies never share counters.
    """

    def __init__(self, *, limit: int, window_seconds: int, clock: Callable[[], float] = time.time) -> None:
        if limit <= 0 or window_seconds <= 0:
            raise ValueError("limit and window_seconds must be > 0")
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self._clock = clock
        self._lock = asyncio.Lock()
        # key -> (window_start_epoch_sec, count)
        self._state: Dict[str, Tuple[int, int]] = {}

    async def hit(self, key: str) -> RateLimitResult:
        now = int(self._clock())
        window_start = now - (now % self.window_seconds)
        reset_in = (window_start + self.window_seconds) - now

        async with self._lock:
            start, count = self._state.get(key, (window_start, 0))
            if start != window_start:
                start, count = window_start, 0

            if count >= self.limit:
                self._state[key] = (start, count)
                return RateLimitResult(allowed=False, remaining=0, reset_in_seconds=reset_in)

            count += 1
            self._state[key] = (start, count)
            self._prune(window_start)
            return RateLimitResult(allowed=True, remaining=max(0, self.limit - count), reset_in_seconds=reset_in)

    def _prune(self, current_window: int) -> None:
        # Drop counters from previous windows so idle keys don't accumulate.
        if len(self._state) < 1024:
            return
        stale = [k for k, (start, _) in self._state.items() if start != current_window]
        for k in stale:
            del self._state[k]
