from __future__ import annotations

import pytest

from lecture_pipeline.core.rate_limit import FixedWindowRateLimiter


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_fixed_window_blocks_then_resets() -> None:
    clock = _Clock(1_000)
    limiter = FixedWindowRateLimiter(limit=2, window_seconds=60, clock=clock)

    first = await limiter.hit("upload:a")
    second = await limiter.hit("upload:a")
    third = await limiter.hit("upload:a")

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert third.allowed is False
    # 1000 sits 40s into the [960, 1020) window.
    assert third.reset_in_seconds == 20

    clock.now = 1_020
    assert (await limiter.hit("upload:a")).allowed is True


@pytest.mark.asyncio
async def test_keys_are_independent() -> None:
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=_Clock(0))

    assert (await limiter.hit("upload:a")).allowed
    assert (await limiter.hit("upload:b")).allowed
    assert not (await limiter.hit("upload:a")).allowed


def test_rejects_nonsense_policy() -> None:
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(limit=0, window_seconds=60)
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(limit=1, window_seconds=0)
