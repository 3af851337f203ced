# -*- coding: utf-8 -*-
"""
collector.py
一轮采集：扇出到所有来源（经限流器）-> 汇总 -> 对账去重 -> 一次批量写库。

- 单个来源失败（超时/网络/解析）只记日志，算 0 条，不影响其他来源
- 写库失败（StoreError）向上抛，本轮计数不可信，下一轮自然重试
- 采集与过期清理共用一把锁，清理不会和采集同时跑
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from .models import Event
from .normalizer import suppress_display_duplicates
from .ratelimit import RateLimiter
from .reconcile import ReconciliationEngine
from .sources.base import EventSource, SourceRegistry
from .storage import EventStore
from .utils import local_today

LOG = logging.getLogger(__name__)


@dataclass
class SourceStatus:
    """单个来源的健康情况（只在内存里）。"""
    name: str
    last_attempt: Optional[datetime] = None
    last_success: Optional[datetime] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_count: int = 0


class CollectionOrchestrator:
    def __init__(
        self,
        registry: SourceRegistry,
        store: EventStore,
        limiter: Optional[RateLimiter] = None,
        engine: Optional[ReconciliationEngine] = None,
        source_timeout: float = 30.0,
        tz_name: Optional[str] = None,
    ):
        self.registry = registry
        self.store = store
        self.limiter = limiter or RateLimiter()
        self.engine = engine or ReconciliationEngine()
        self.engine.add_source_names(registry.names())
        self.source_timeout = source_timeout
        self.tz_name = tz_name

        self._lock = asyncio.Lock()
        self._status: Dict[str, SourceStatus] = {}

    # -------------------- 单源 --------------------

    def _mark(self, name: str, count: int = 0, error: Optional[str] = None) -> None:
        st = self._status.setdefault(name, SourceStatus(name))
        st.last_attempt = datetime.now()
        st.last_count = count
        if error is None:
            st.last_success = st.last_attempt
            st.error_count = 0
            st.last_error = None
        else:
            st.error_count += 1
            st.last_error = error

    async def _fetch_one(self, source: EventSource, target_date: date) -> List[Event]:
        """跑一个来源；任何异常（取消除外）都吞掉，返回空列表。"""
        try:
            async with self.limiter.acquire():
                LOG.info(f"[collector] 抓取 {source.name} ({target_date})")
                events = await asyncio.wait_for(source.fetch(target_date), timeout=self.source_timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            LOG.warning(f"[collector] {source.name} 超时（>{self.source_timeout}s），记 0 条")
            self._mark(source.name, error="timeout")
            return []
        except Exception as e:
            LOG.warning(f"[collector] {source.name} 失败，记 0 条: {e!r}", exc_info=True)
            self._mark(source.name, error=repr(e))
            return []

        events = list(events or [])
        self._mark(source.name, count=len(events))
        if events:
            LOG.info(f"[collector] {source.name} 返回 {len(events)} 条")
        else:
            LOG.info(f"[collector] {source.name} 没有事件")
        return events

    def _on_date(self, events: List[Event], target_date: date) -> List[Event]:
        """事件日期必须等于采集目标日期（跨天窗口由来源按天展开）。"""
        kept = []
        for ev in events:
            if not ev.title or ev.event_time is None:
                LOG.warning(f"[collector] {ev.source} 产出了缺标题/时间的事件，丢弃")
                continue
            if ev.event_time.date() != target_date:
                LOG.debug(f"[collector] {ev.source} 事件日期 {ev.event_time:%Y-%m-%d} != {target_date}，丢弃: {ev.title}")
                continue
            kept.append(ev)
        return kept

    # -------------------- 一轮采集 --------------------

    async def collect(self, target_date: date) -> int:
        """
        采集 target_date 的事件，返回本轮新增条数（>= 0）。
        同一时间只跑一轮（与清理互斥）。
        """
        async with self._lock:
            sources = self.registry.enabled()
            LOG.info(f"[collector] 开始采集 {target_date}，来源 {len(sources)} 个")
            self.engine.add_source_names(s.name for s in sources)

            # 扇出 + 屏障：所有来源结束（成功或失败）后才往下走
            results = await asyncio.gather(*(self._fetch_one(s, target_date) for s in sources))
            candidates = self._on_date([ev for batch in results for ev in batch], target_date)
            if not candidates:
                LOG.info("[collector] 所有来源都没有事件")
                return 0

            # 先盖 hash 再批量查库里已有的精确 hash
            for ev in candidates:
                self.engine.stamp(ev)
            existing_fps = await self.store.existing_fingerprints(target_date)
            existing_hashes = await self.store.existing_hashes(ev.hash for ev in candidates)

            result = self.engine.reconcile(candidates, existing_fps, existing_hashes)
            LOG.info(
                f"[collector] 去重后 {len(result.admitted) + len(result.duplicates)} 组"
                f"（原 {len(candidates)} 条，被高优先级来源顶掉 {len(result.superseded)}，"
                f"库里已有 {len(result.duplicates)}）"
            )

            if not result.admitted:
                LOG.info("[collector] 全部已在库中")
                return 0

            inserted = await self.store.insert_many(result.admitted)
            LOG.info(f"[collector] 采集完成 {target_date}，新增 {inserted} 条")
            return max(inserted, 0)

    async def collect_today(self) -> int:
        return await self.collect(local_today(self.tz_name))

    # -------------------- 维护 / 查询 --------------------

    async def cleanup_old_events(self, days_to_keep: int = 30, today: Optional[date] = None) -> int:
        """删除 days_to_keep 天以前的事件；与采集互斥。"""
        cutoff = (today or local_today(self.tz_name)) - timedelta(days=days_to_keep)
        async with self._lock:
            LOG.info(f"[collector] 清理 {days_to_keep} 天前（{cutoff} 之前）的事件")
            deleted = await self.store.delete_older_than(cutoff)
        LOG.info(f"[collector] 清理完成，删除 {deleted} 条")
        return deleted

    async def events_for_date(self, day: date) -> List[Event]:
        """
        展示用：当天已入库事件，每个跨来源组留一条，
        再按来源做标题近似去重，按时间排序。
        """
        stored = await self.store.events_in_range(day)
        winners = self.engine.select_winners(stored)
        shown = suppress_display_duplicates(winners, self.engine.source_names)
        return sorted(shown, key=lambda e: (e.event_time, e.id or 0))

    async def search_events(self, term: str) -> List[Event]:
        return await self.store.search_events(term)

    def source_status(self) -> Dict[str, SourceStatus]:
        return dict(self._status)
