# -*- coding: utf-8 -*-
"""
sources/calendar_table.py
静态日历来源：休市日、FOMC、经济指标发布时间等“事先就知道”的事件。
规则表是这个来源自己的（ops/calendar.yml），不属于采集核心。

ops/calendar.yml 格式：
    holidays:
      - {date: 2025-10-03, title: "개천절 휴장"}
    events:
      - {date: 2025-10-29, time: "03:00", title: "🇺🇸 FOMC 금리결정", category: fomc, important: true}
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..errors import SourceError
from ..models import CATEGORY_EVENT, CATEGORY_HOLIDAY, Event

LOG = logging.getLogger(__name__)


def _day(raw: Any) -> Optional[date]:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError:
        return None


def _hhmm(raw: Any) -> time:
    if not raw:
        return time(0, 0)
    # YAML 会把 03:00 读成 180（六十进制整数）
    if isinstance(raw, int):
        return time(raw // 60 % 24, raw % 60)
    hh, mm = str(raw).strip().split(":")[:2]
    return time(int(hh), int(mm))


class CalendarEventSource:
    def __init__(self, name: str, table: Optional[Dict[str, Any]] = None,
                 path: Optional[Union[str, Path]] = None):
        self.name = name
        self.path = Path(path) if path else None
        # 规则表懒加载，生命周期跟着这个来源走
        self._table = table

    def _load(self) -> Dict[str, Any]:
        if self._table is None:
            if self.path is None:
                self._table = {}
            else:
                try:
                    with open(self.path, "r", encoding="utf-8") as f:
                        self._table = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    raise SourceError(self.name, f"calendar file {self.path}: {e}", e) from e
                LOG.info(f"[calendar] {self.name} 载入 {self.path}")
        return self._table

    async def fetch(self, target_date: date) -> List[Event]:
        table = self._load()
        events: List[Event] = []

        for h in table.get("holidays", []) or []:
            if _day(h.get("date")) == target_date and h.get("title"):
                events.append(Event(
                    event_time=datetime.combine(target_date, time(0, 0)),
                    title=str(h["title"]),
                    source=self.name,
                    category=CATEGORY_HOLIDAY,
                    is_important=True,
                ))

        for e in table.get("events", []) or []:
            if _day(e.get("date")) != target_date or not e.get("title"):
                continue
            try:
                at = _hhmm(e.get("time"))
            except ValueError:
                LOG.warning(f"[calendar] {self.name} 时间格式不对，跳过: {e}")
                continue
            events.append(Event(
                event_time=datetime.combine(target_date, at),
                title=str(e["title"]),
                source=self.name,
                category=e.get("category") or CATEGORY_EVENT,
                description=e.get("description"),
                is_important=bool(e.get("important", False)),
            ))
        return events

    def __repr__(self) -> str:
        return f"CalendarEventSource({self.name!r})"
