# -*- coding: utf-8 -*-
"""
tests/test_collector.py
一轮采集端到端：假来源 -> 限流 -> 对账 -> SQLite。
"""

import asyncio
from datetime import date, timedelta

import pytest

from timeline_hub.collector import CollectionOrchestrator
from timeline_hub.errors import SourceError, StoreError
from timeline_hub.normalizer import stamp
from timeline_hub.ratelimit import RateLimiter
from timeline_hub.reconcile import ReconciliationEngine, SourcePriority
from timeline_hub.sources.base import SourceRegistry
from timeline_hub.storage import SqliteEventStore

from conftest import DAY, FakeSource, make_event


def _orchestrator(store, *sources, timeout=5.0):
    registry = SourceRegistry()
    for s in sources:
        registry.register(s)
    engine = ReconciliationEngine(SourcePriority(["sourceA", "sourceB", "sourceC"]))
    return CollectionOrchestrator(registry, store, RateLimiter(3, 0), engine, source_timeout=timeout)


def _three_sources():
    a = FakeSource("sourceA", [make_event("Samsung Q3 Earnings", "sourceA", 15, 0)])
    b = FakeSource("sourceB", [
        make_event("[SourceB] 삼성 3분기 실적", "sourceB", 9, 30),
        make_event("US CPI (MoM)", "sourceB", 21, 30),
    ])
    c = FakeSource("sourceC", [make_event("🇺🇸 미국 소비자물가지수 (CPI)", "sourceC", 21, 30)])
    return a, b, c


@pytest.mark.asyncio
async def test_three_sources_end_to_end(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        orch = _orchestrator(store, *_three_sources())

        assert await orch.collect(DAY) == 2
        stored = await store.events_in_range(DAY)
        assert sorted((e.source, e.title) for e in stored) == [
            ("sourceA", "Samsung Q3 Earnings"),
            ("sourceB", "US CPI (MoM)"),
        ]

        # 第二轮：来源返回同样的东西，0 新增
        assert await orch.collect(DAY) == 0
        assert len(await store.events_in_range(DAY)) == 2
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_bracketed_company_prefixes_stay_distinct(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        krx = FakeSource("KRX", [
            make_event("[삼성전자] 정기주주총회", "KRX", 9, 0),
            make_event("[LG전자] 정기주주총회", "KRX", 10, 0),
            make_event("[청약] 에이비엘바이오", "KRX", 11, 0),
            make_event("[상장] 에이비엘바이오", "KRX", 12, 0),
        ])
        orch = _orchestrator(store, krx)

        assert await orch.collect(DAY) == 4
        shown = [e.title for e in await orch.events_for_date(DAY)]
        assert shown == [
            "[삼성전자] 정기주주총회",
            "[LG전자] 정기주주총회",
            "[청약] 에이비엘바이오",
            "[상장] 에이비엘바이오",
        ]
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_lower_priority_source_later_is_suppressed(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        a, b, c = _three_sources()
        assert await _orchestrator(store, c).collect(DAY) == 1
        # 已入库的是 sourceC 的版本；更高优先级的来源后到也不再新增
        assert await _orchestrator(store, a, b).collect(DAY) == 1
        titles = sorted(e.title for e in await store.events_in_range(DAY))
        assert titles == ["Samsung Q3 Earnings", "🇺🇸 미국 소비자물가지수 (CPI)"]
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_failing_sources_do_not_abort_collection(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        ok = FakeSource("sourceA", [make_event("FOMC 금리결정", "sourceA", 3, 0)])
        broken = FakeSource("sourceB", error=SourceError("sourceB", "boom"))
        slow = FakeSource("sourceC", [make_event("US CPI", "sourceC", 21, 30)], delay=1.0)
        orch = _orchestrator(store, ok, broken, slow, timeout=0.05)

        assert await orch.collect(DAY) == 1
        status = orch.source_status()
        assert status["sourceA"].error_count == 0
        assert status["sourceA"].last_count == 1
        assert status["sourceB"].error_count == 1
        assert "boom" in status["sourceB"].last_error
        assert status["sourceC"].last_error == "timeout"
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_all_sources_fail_returns_zero(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        orch = _orchestrator(store, FakeSource("x", error=RuntimeError("down")))
        assert await orch.collect(DAY) == 0
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_events_off_target_date_are_dropped(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        src = FakeSource("sourceA", [
            make_event("오늘 이벤트", "sourceA", 10, 0),
            make_event("내일 이벤트", "sourceA", 10, 0, day=DAY + timedelta(days=1)),
            make_event("", "sourceA", 11, 0),
        ])
        assert await _orchestrator(store, src).collect(DAY) == 1
        assert [e.title for e in await store.events_in_range(DAY)] == ["오늘 이벤트"]
        assert await store.events_in_range(DAY + timedelta(days=1)) == []
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_disabled_source_is_skipped(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        a, b, c = _three_sources()
        orch = _orchestrator(store, a, b, c)
        orch.registry.set_enabled("sourceB", False)
        orch.registry.set_enabled("sourceC", False)
        assert await orch.collect(DAY) == 1
        assert b.calls == [] and c.calls == []
    finally:
        await store.close()


class _BrokenStore:
    async def existing_fingerprints(self, day):
        return set()

    async def existing_hashes(self, hashes):
        return set()

    async def insert_many(self, events):
        raise StoreError("disk full")


@pytest.mark.asyncio
async def test_store_failure_propagates():
    src = FakeSource("sourceA", [make_event("FOMC 금리결정", "sourceA", 3, 0)])
    with pytest.raises(StoreError):
        await _orchestrator(_BrokenStore(), src).collect(DAY)


@pytest.mark.asyncio
async def test_cleanup_old_events(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        old = stamp(make_event("오래된 공시", "DART", 9, 0, day=DAY - timedelta(days=31)))
        edge = stamp(make_event("딱 30일 전", "DART", 9, 0, day=DAY - timedelta(days=30)))
        fresh = stamp(make_event("최근 공시", "DART", 9, 0))
        await store.insert_many([old, edge, fresh])

        orch = _orchestrator(store)
        assert await orch.cleanup_old_events(30, today=DAY) == 1
        left = sorted(e.title for e in await store.search_events(""))
        assert left == ["딱 30일 전", "최근 공시"]
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_cleanup_waits_for_running_collection(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        old = stamp(make_event("오래된 공시", "DART", 9, 0, day=DAY - timedelta(days=40)))
        await store.insert_many([old])
        slow = FakeSource("sourceA", [make_event("FOMC 금리결정", "sourceA", 3, 0)], delay=0.1)
        orch = _orchestrator(store, slow)

        collecting = asyncio.create_task(orch.collect(DAY))
        await asyncio.sleep(0.01)
        cleaning = asyncio.create_task(orch.cleanup_old_events(30, today=DAY))
        await asyncio.sleep(0.02)
        assert not cleaning.done()

        assert await collecting == 1
        assert await cleaning == 1
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_events_for_date_one_per_group(db_path):
    store = await SqliteEventStore.open(db_path)
    try:
        # 直接写库两条跨来源重复，读路径只显示优先级高的
        dup_low = stamp(make_event("🇺🇸 CPI (MoM)", "sourceC", 21, 30))
        dup_high = stamp(make_event("US CPI", "sourceB", 21, 30))
        other = stamp(make_event("FOMC 금리결정", "sourceC", 3, 0))
        await store.insert_many([dup_low, dup_high, other])

        orch = _orchestrator(store)
        shown = await orch.events_for_date(DAY)
        assert [(e.source, e.title) for e in shown] == [
            ("sourceC", "FOMC 금리결정"),
            ("sourceB", "US CPI"),
        ]
        assert [e.title for e in await orch.search_events("FOMC")] == ["FOMC 금리결정"]
    finally:
        await store.close()
