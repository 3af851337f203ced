# -*- coding: utf-8 -*-
"""
scheduler.py
周期调度：启动时立即采集一次，之后每 interval_minutes 采集一次；
每周固定一天顺带做一次过期清理。

状态：IDLE -> RUNNING -> {IDLE | STOPPED}
- stop(): RUNNING -> STOPPED，正在跑的那一轮跑完，之后不再开新一轮
- 外部取消（进程退出）：等当前这一轮跑完再退出，状态回到 IDLE
- 单轮里的任何异常只记日志，下一轮照常
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import date, datetime
from typing import Callable, Optional

from .collector import CollectionOrchestrator
from .utils import local_now, parse_weekday

LOG = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Scheduler:
    def __init__(
        self,
        orchestrator: CollectionOrchestrator,
        interval_minutes: float = 5,
        retention_days: int = 30,
        cleanup_weekday=6,
        tz_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be > 0")
        self.orchestrator = orchestrator
        self.interval_minutes = interval_minutes
        self.retention_days = retention_days
        self.cleanup_weekday = parse_weekday(cleanup_weekday)
        self.clock = clock or (lambda: local_now(tz_name))

        self.state = SchedulerState.IDLE
        self.cycles = 0
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._last_cleanup: Optional[date] = None

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    # -------------------- 控制 --------------------

    def start(self) -> asyncio.Task:
        """开始调度（需要在事件循环里调用）。已在运行时只记日志。"""
        if self.state is SchedulerState.RUNNING:
            LOG.info("[scheduler] 已在运行，忽略 start()")
            return self._task
        if self._task is not None and not self._task.done():
            # 上一次 stop() 后的那一轮还没跑完
            LOG.info("[scheduler] 上一轮尚未结束，恢复运行")
            self.state = SchedulerState.RUNNING
            self._wake.clear()
            return self._task

        self.state = SchedulerState.RUNNING
        self._wake = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="timeline-scheduler")
        LOG.info(f"[scheduler] started, 每 {self.interval_minutes} 分钟采集一次")
        return self._task

    def stop(self) -> None:
        if self.state is not SchedulerState.RUNNING:
            return
        self.state = SchedulerState.STOPPED
        if self._wake is not None:
            self._wake.set()
        LOG.info("[scheduler] stopped")

    async def shutdown(self) -> None:
        """停止并取消调度任务；取消视为正常关闭，不向调用方抛异常。"""
        self.stop()
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            LOG.info("[scheduler] 任务已取消（正常关闭）")

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # -------------------- 主循环 --------------------

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.interval_minutes * 60
        try:
            LOG.info("[scheduler] 启动即采集一次")
            await self._guarded_cycle()

            next_tick = loop.time() + interval
            while self.state is SchedulerState.RUNNING:
                delay = next_tick - loop.time()
                if delay > 0:
                    try:
                        await asyncio.wait_for(self._wake.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                if self.state is not SchedulerState.RUNNING:
                    break

                await self._guarded_cycle()

                # 一轮跑超了就跳过错过的 tick，不叠加
                next_tick += interval
                now = loop.time()
                if next_tick <= now:
                    skipped = int((now - next_tick) // interval) + 1
                    next_tick += skipped * interval
                    LOG.warning(f"[scheduler] 本轮超时，跳过 {skipped} 个 tick")
        except asyncio.CancelledError:
            LOG.info("[scheduler] cancelled")
            if self.state is SchedulerState.RUNNING:
                self.state = SchedulerState.IDLE
            raise
        finally:
            LOG.info("[scheduler] finished")

    async def _guarded_cycle(self) -> None:
        """外部取消不打断正在跑的一轮：等它跑完再把取消抛出去。"""
        cycle = asyncio.ensure_future(self._cycle())
        try:
            await asyncio.shield(cycle)
        except asyncio.CancelledError:
            if not cycle.done():
                LOG.info("[scheduler] 收到取消，等待当前一轮结束")
                await asyncio.gather(cycle, return_exceptions=True)
            raise

    async def _cycle(self) -> None:
        now = self.clock()
        self.cycles += 1
        try:
            LOG.info(f"[scheduler] 定时采集开始 ({now:%Y-%m-%d %H:%M})")
            n = await self.orchestrator.collect(now.date())
            LOG.info(f"[scheduler] 定时采集完成，新增 {n} 条")
        except Exception:
            LOG.exception("[scheduler] 定时采集出错")

        if now.weekday() == self.cleanup_weekday and self._last_cleanup != now.date():
            try:
                await self.orchestrator.cleanup_old_events(self.retention_days, today=now.date())
                self._last_cleanup = now.date()
            except Exception:
                LOG.exception("[scheduler] 过期清理出错，下个 tick 重试")
