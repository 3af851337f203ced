# -*- coding: utf-8 -*-
"""
tests/test_ratelimit.py
限流器：并发上限 + 相邻放行最小间隔。
"""

import asyncio
import time

import pytest

from timeline_hub.ratelimit import RateLimiter


@pytest.mark.asyncio
async def test_spacing_between_grants():
    limiter = RateLimiter(max_concurrent=1, min_spacing_ms=1000)
    grants = []

    async def job():
        async with limiter.acquire() as granted:
            grants.append(granted)

    await asyncio.gather(job(), job())
    assert len(grants) == 2
    assert grants[1] - grants[0] >= 1.0


@pytest.mark.asyncio
async def test_spacing_applies_across_slots():
    limiter = RateLimiter(max_concurrent=3, min_spacing_ms=100)
    grants = []

    async def job():
        async with limiter.acquire() as granted:
            grants.append(granted)
            await asyncio.sleep(0.01)

    await asyncio.gather(*(job() for _ in range(4)))
    grants.sort()
    assert all(b - a >= 0.1 for a, b in zip(grants, grants[1:]))


@pytest.mark.asyncio
async def test_concurrency_cap():
    limiter = RateLimiter(max_concurrent=2, min_spacing_ms=0)
    peak = 0

    async def job():
        nonlocal peak
        async with limiter.acquire():
            peak = max(peak, limiter.in_flight)
            await asyncio.sleep(0.05)

    await asyncio.gather(*(job() for _ in range(6)))
    assert peak == 2
    assert limiter.in_flight == 0


@pytest.mark.asyncio
async def test_cancel_while_waiting_releases_slot():
    limiter = RateLimiter(max_concurrent=1, min_spacing_ms=0)
    release = asyncio.Event()

    async def holder():
        async with limiter.acquire():
            await release.wait()

    async def waiter():
        async with limiter.acquire():
            pass

    h = asyncio.create_task(holder())
    await asyncio.sleep(0)
    w = asyncio.create_task(waiter())
    await asyncio.sleep(0.01)
    w.cancel()
    with pytest.raises(asyncio.CancelledError):
        await w

    release.set()
    await h

    t0 = time.monotonic()
    await asyncio.wait_for(waiter(), timeout=1.0)
    assert time.monotonic() - t0 < 1.0
    assert limiter.in_flight == 0


def test_invalid_arguments():
    with pytest.raises(ValueError):
        RateLimiter(max_concurrent=0)
    with pytest.raises(ValueError):
        RateLimiter(min_spacing_ms=-1)
