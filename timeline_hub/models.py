# -*- coding: utf-8 -*-
"""
models.py
时间线事件数据模型。字段与 storage.py 的 events 表一一对应：
id, event_time, title, description, source, source_url, category,
is_important, tags, related_stock_code, related_stock_name,
created_at, updated_at, hash, normalized_hash
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Optional

# 分类只用于筛选，不参与身份判定（开放集合，来源可以自定义）
CATEGORY_DISCLOSURE = "disclosure"
CATEGORY_NEWS = "news"
CATEGORY_IPO = "ipo"
CATEGORY_EARNINGS = "earnings"
CATEGORY_FOMC = "fomc"
CATEGORY_INDICATOR = "indicator"
CATEGORY_HOLIDAY = "market_holiday"
CATEGORY_LOCKUP = "lockup_release"
CATEGORY_EVENT = "event"

TIME_FMT = "%Y-%m-%d %H:%M:%S"


def _fmt(ts: Optional[datetime]) -> Optional[str]:
    return ts.strftime(TIME_FMT) if ts is not None else None


def _parse(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    return datetime.strptime(raw, TIME_FMT)


@dataclass
class Event:
    # 事件发生时间（本地时间，精确到分钟即可，秒常为 0）
    event_time: datetime

    # 标题（各来源措辞不同）与来源标识（用于优先级查找）
    title: str
    source: str

    category: str = CATEGORY_EVENT
    description: Optional[str] = None
    source_url: Optional[str] = None
    is_important: bool = False

    # 多值用分号分隔，如 "#반도체;#AI"
    tags: Optional[str] = None

    related_stock_code: Optional[str] = None
    related_stock_name: Optional[str] = None

    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    # hash: 同一来源的精确身份（title + 分钟 + source），库内唯一
    # normalized_hash: 跨来源身份（规范化标题 + 日期）
    hash: str = ""
    normalized_hash: str = ""

    # 入库后由 store 分配
    id: Optional[int] = None

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["event_time"] = _fmt(self.event_time)
        row["created_at"] = _fmt(self.created_at)
        row["updated_at"] = _fmt(self.updated_at)
        row["is_important"] = 1 if self.is_important else 0
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Event":
        return cls(
            id=row.get("id"),
            event_time=_parse(row["event_time"]),
            title=row["title"],
            source=row["source"],
            category=row.get("category") or CATEGORY_EVENT,
            description=row.get("description"),
            source_url=row.get("source_url"),
            is_important=bool(row.get("is_important")),
            tags=row.get("tags"),
            related_stock_code=row.get("related_stock_code"),
            related_stock_name=row.get("related_stock_name"),
            created_at=_parse(row.get("created_at")) or datetime.now(),
            updated_at=_parse(row.get("updated_at")),
            hash=row.get("hash") or "",
            normalized_hash=row.get("normalized_hash") or "",
        )
