# -*- coding: utf-8 -*-
"""
ratelimit.py
所有来源共用的限流器：
- 并发上限 max_concurrent（同时在跑的请求数）
- 最小间隔 min_spacing_ms（相邻两次放行的开始时间至少相隔这么久）
两个约束同时生效；只会等待，从不拒绝。
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

LOG = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, max_concurrent: int = 3, min_spacing_ms: int = 1000):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if min_spacing_ms < 0:
            raise ValueError("min_spacing_ms must be >= 0")
        self.max_concurrent = max_concurrent
        self.min_spacing = min_spacing_ms / 1000.0

        self._slots = asyncio.Semaphore(max_concurrent)
        # 放行串行化：拿到 _grant_lock 的人才能推进 _last_grant
        self._grant_lock = asyncio.Lock()
        self._last_grant: Optional[float] = None
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def _wait_spacing(self) -> float:
        async with self._grant_lock:
            if self._last_grant is not None:
                # 定时器可能略早醒，醒来再量一次
                gap = self._last_grant + self.min_spacing - time.monotonic()
                while gap > 0:
                    await asyncio.sleep(gap)
                    gap = self._last_grant + self.min_spacing - time.monotonic()
            self._last_grant = time.monotonic()
            return self._last_grant

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[float]:
        """
        用法：
            async with limiter.acquire():
                await client.get(url)
        产出放行时刻（monotonic 秒）。
        """
        await self._slots.acquire()
        try:
            granted = await self._wait_spacing()
            self._in_flight += 1
        except BaseException:
            # 等间隔时被取消：归还并发槽位
            self._slots.release()
            raise
        try:
            yield granted
        finally:
            self._in_flight -= 1
            self._slots.release()
