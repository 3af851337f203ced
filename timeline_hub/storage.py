# -*- coding: utf-8 -*-
"""
storage.py
SQLite（aiosqlite）持久化：
- 初始化/建表
- 批量写入（hash 唯一，重复 hash 静默跳过）
- 按 hash / normalized_hash 查重
- 按日期/区间查询、搜索
- 按时间清理过期
完全对齐 timeline_hub.models.Event 字段。
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Set, Union

import aiosqlite

from .errors import StoreError
from .models import Event, TIME_FMT

LOG = logging.getLogger(__name__)

# SQLite 默认最多 999 个绑定变量
_IN_CHUNK = 500

COLUMNS = (
    "event_time", "title", "description", "source", "source_url", "category",
    "is_important", "tags", "related_stock_code", "related_stock_name",
    "created_at", "updated_at", "hash", "normalized_hash",
)

# --------- 建表 SQL（严格对齐 Event 字段） ---------
SCHEMA_EVENTS = """
CREATE TABLE IF NOT EXISTS events (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    event_time         TEXT NOT NULL,
    title              TEXT NOT NULL,
    description        TEXT,
    source             TEXT NOT NULL,
    source_url         TEXT,
    category           TEXT NOT NULL,
    is_important       INTEGER DEFAULT 0,
    tags               TEXT,
    related_stock_code TEXT,
    related_stock_name TEXT,
    created_at         TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at         TEXT,
    hash               TEXT NOT NULL UNIQUE,
    normalized_hash    TEXT NOT NULL
);
"""

SCHEMA_IDX = """
CREATE INDEX IF NOT EXISTS idx_events_time       ON events(event_time);
CREATE INDEX IF NOT EXISTS idx_events_category   ON events(category);
CREATE INDEX IF NOT EXISTS idx_events_source     ON events(source);
CREATE INDEX IF NOT EXISTS idx_events_normalized ON events(normalized_hash);
"""

_INSERT_SQL = (
    f"INSERT INTO events({', '.join(COLUMNS)}) "
    f"VALUES({', '.join('?' for _ in COLUMNS)}) "
    "ON CONFLICT(hash) DO NOTHING"
)


def _day_bounds(day: Union[date, datetime]):
    d = day.date() if isinstance(day, datetime) else day
    start = datetime.combine(d, time.min)
    return start.strftime(TIME_FMT), (start + timedelta(days=1)).strftime(TIME_FMT)


def _as_ts(value: Union[date, datetime]) -> str:
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    return value.strftime(TIME_FMT)


def _chunks(items: Sequence[str], size: int = _IN_CHUNK):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class EventStore(Protocol):
    """采集核心需要的存储能力。"""

    async def exists_by_hash(self, hash_: str) -> bool: ...

    async def existing_hashes(self, hashes: Iterable[str]) -> Set[str]: ...

    async def existing_fingerprints(self, day: date) -> Set[str]: ...

    async def insert_many(self, events: Sequence[Event]) -> int: ...

    async def events_in_range(self, day: date) -> List[Event]: ...

    async def delete_older_than(self, cutoff: Union[date, datetime]) -> int: ...

    async def search_events(self, term: str, since: Optional[date] = None) -> List[Event]: ...


# --------- 初始化 ---------
async def init_db(db_path: Union[str, Path]) -> aiosqlite.Connection:
    """
    初始化数据库并返回连接。
    ":memory:" 也可以，测试里常用。
    """
    if str(db_path) != ":memory:":
        p = Path(db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        db_path = str(p)
    try:
        db = await aiosqlite.connect(str(db_path))
        db.row_factory = aiosqlite.Row
        # 性能相关 pragma
        await db.execute("PRAGMA journal_mode=WAL;")
        await db.execute("PRAGMA synchronous=NORMAL;")
        await db.execute(SCHEMA_EVENTS)
        for stmt in filter(None, SCHEMA_IDX.split(";")):
            s = stmt.strip()
            if s:
                await db.execute(s + ";")
        await db.commit()
    except aiosqlite.Error as e:
        raise StoreError(f"init_db failed: {e}") from e
    return db


class SqliteEventStore:
    """
    EventStore 的 SQLite 实现。一个连接，写操作串行（_write_lock）。
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db
        self._write_lock = asyncio.Lock()

    @classmethod
    async def open(cls, db_path: Union[str, Path]) -> "SqliteEventStore":
        return cls(await init_db(db_path))

    async def close(self) -> None:
        await self.db.close()

    async def _fetch(self, sql: str, params: Sequence = ()) -> List[aiosqlite.Row]:
        try:
            async with self.db.execute(sql, tuple(params)) as cur:
                return list(await cur.fetchall())
        except aiosqlite.Error as e:
            raise StoreError(f"query failed: {e}") from e

    # --------- 查重 ---------
    async def exists_by_hash(self, hash_: str) -> bool:
        rows = await self._fetch("SELECT 1 FROM events WHERE hash = ? LIMIT 1;", (hash_,))
        return bool(rows)

    async def existing_hashes(self, hashes: Iterable[str]) -> Set[str]:
        wanted = sorted({h for h in hashes if h})
        found: Set[str] = set()
        for chunk in _chunks(wanted):
            marks = ",".join("?" for _ in chunk)
            rows = await self._fetch(f"SELECT hash FROM events WHERE hash IN ({marks});", chunk)
            found.update(r["hash"] for r in rows)
        return found

    async def existing_fingerprints(self, day: date) -> Set[str]:
        start, end = _day_bounds(day)
        rows = await self._fetch(
            "SELECT DISTINCT normalized_hash FROM events WHERE event_time >= ? AND event_time < ?;",
            (start, end),
        )
        return {r["normalized_hash"] for r in rows}

    # --------- 写入（幂等） ---------
    async def insert_many(self, events: Sequence[Event]) -> int:
        """
        一个事务写完一批；hash 冲突的行跳过（不算错）。
        返回实际新插入的行数，并把库分配的 id 回填到事件上。
        """
        if not events:
            return 0
        rows = []
        for ev in events:
            if not ev.hash:
                raise ValueError(f"insert_many: event without hash: {ev.title!r}")
            r = ev.to_row()
            rows.append(tuple(r[c] for c in COLUMNS))

        async with self._write_lock:
            before = self.db.total_changes
            try:
                await self.db.executemany(_INSERT_SQL, rows)
                await self.db.commit()
            except aiosqlite.Error as e:
                await self.db.rollback()
                raise StoreError(f"insert_many failed ({len(rows)} rows): {e}") from e
            inserted = self.db.total_changes - before

        ids = {}
        for chunk in _chunks([ev.hash for ev in events]):
            marks = ",".join("?" for _ in chunk)
            for r in await self._fetch(f"SELECT id, hash FROM events WHERE hash IN ({marks});", chunk):
                ids[r["hash"]] = r["id"]
        for ev in events:
            ev.id = ids.get(ev.hash, ev.id)
        return inserted

    # --------- 查询 ---------
    async def events_in_range(self, day: date) -> List[Event]:
        start, end = _day_bounds(day)
        return await self._select("event_time >= ? AND event_time < ?", (start, end))

    async def events_between(self, start: Union[date, datetime], end: Union[date, datetime]) -> List[Event]:
        return await self._select("event_time >= ? AND event_time <= ?", (_as_ts(start), _as_ts(end)))

    async def events_by_category(self, category: str, day: date) -> List[Event]:
        start, end = _day_bounds(day)
        return await self._select(
            "category = ? AND event_time >= ? AND event_time < ?", (category, start, end)
        )

    async def count_by_source(self, source: str, day: date) -> int:
        start, end = _day_bounds(day)
        rows = await self._fetch(
            "SELECT COUNT(*) AS n FROM events WHERE source = ? AND event_time >= ? AND event_time < ?;",
            (source, start, end),
        )
        return int(rows[0]["n"]) if rows else 0

    async def search_events(self, term: str, since: Optional[date] = None) -> List[Event]:
        clauses, params = [], []
        if term and term.strip():
            like = f"%{term.strip()}%"
            clauses.append(
                "(title LIKE ? OR description LIKE ? OR related_stock_name LIKE ? OR related_stock_code LIKE ?)"
            )
            params.extend([like, like, like, like])
        if since is not None:
            clauses.append("event_time >= ?")
            params.append(_as_ts(since))
        return await self._select(" AND ".join(clauses) or "1=1", params)

    async def _select(self, where: str, params: Sequence) -> List[Event]:
        rows = await self._fetch(
            f"SELECT id, {', '.join(COLUMNS)} FROM events WHERE {where} ORDER BY event_time, id;",
            params,
        )
        return [Event.from_row(dict(r)) for r in rows]

    # --------- 清理过期 ---------
    async def delete_older_than(self, cutoff: Union[date, datetime]) -> int:
        """删除 event_time < cutoff 的事件，返回删除条数。"""
        async with self._write_lock:
            try:
                cur = await self.db.execute("DELETE FROM events WHERE event_time < ?;", (_as_ts(cutoff),))
                deleted = cur.rowcount
                await cur.close()
                await self.db.commit()
            except aiosqlite.Error as e:
                await self.db.rollback()
                raise StoreError(f"delete_older_than failed: {e}") from e
        LOG.info(f"[storage] 清理 {cutoff} 之前的事件 {deleted} 条")
        return max(deleted, 0)
