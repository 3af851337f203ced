# -*- coding: utf-8 -*-
"""
sources/json_api.py
通用 JSON API 来源。典型响应：
{
    "items": [
        {
            "title": "삼성전자 3분기 실적 발표",
            "url": "https://example.com/disclosure/123",
            "time": "2025-10-29T09:00:00+09:00",     # 或 timestamp（UTC 毫秒）/ 秒级 epoch
            "category": "earnings",
            "important": true,
            "stock_code": "005930", "stock_name": "삼성전자"
        },
        {
            # 申购窗口这类跨天事件：窗口内每天各出一条，时间取 window_time
            "title": "○○바이오 공모주 청약",
            "start": "2025-10-27", "end": "2025-10-28",
            "category": "ipo"
        }
    ]
}
也接受直接返回数组，或 {"data": [...]}。
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Union

import httpx
import pytz

from ..errors import SourceError
from ..models import CATEGORY_EVENT, Event

LOG = logging.getLogger(__name__)


def _items(obj: Union[Dict, List]) -> List[Dict]:
    if isinstance(obj, list):
        items = obj
    elif isinstance(obj, dict):
        items = obj.get("items") or obj.get("data") or []
    else:
        items = []
    return [it for it in items if isinstance(it, dict)]


def _to_local(dt: datetime, tz_name: Optional[str]) -> datetime:
    if dt.tzinfo is None:
        return dt
    tz = pytz.timezone(tz_name) if tz_name else None
    return (dt.astimezone(tz) if tz else dt.astimezone()).replace(tzinfo=None)


def _item_time(item: Dict[str, Any], tz_name: Optional[str]) -> Optional[datetime]:
    """timestamp(毫秒) / time(秒或 ISO 字符串)；都解析不了返回 None。"""
    if "timestamp" in item:
        try:
            utc = datetime.fromtimestamp(int(item["timestamp"]) / 1000, tz=pytz.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
        return _to_local(utc, tz_name)

    raw = item.get("time")
    if isinstance(raw, (int, float)):
        try:
            return _to_local(datetime.fromtimestamp(raw, tz=pytz.utc), tz_name)
        except (ValueError, OverflowError, OSError):
            return None
    if isinstance(raw, str) and raw.strip():
        try:
            return _to_local(datetime.fromisoformat(raw.strip().replace("Z", "+00:00")), tz_name)
        except ValueError:
            return None
    return None


def _parse_day(raw: Any) -> Optional[date]:
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        return None


def parse_json(obj: Union[Dict, List], source_name: str, target_date: date,
               tz_name: Optional[str] = None, default_category: str = CATEGORY_EVENT,
               window_time: time = time(9, 0)) -> List[Event]:
    """
    JSON -> 目标日期的事件列表。
    - 没标题的丢掉
    - 单点事件：时间解析不了的丢掉，不是目标日期的丢掉
    - 窗口事件（start/end）：target_date 落在窗口内才出，时间 = target_date + window_time
    """
    events: List[Event] = []
    for item in _items(obj):
        title = (item.get("title") or item.get("headline") or item.get("subject") or "").strip()
        if not title:
            continue

        if "start" in item or "end" in item:
            start = _parse_day(item.get("start") or item.get("end"))
            end = _parse_day(item.get("end") or item.get("start"))
            if start is None or end is None or not start <= target_date <= end:
                continue
            ts = datetime.combine(target_date, window_time)
        else:
            ts = _item_time(item, tz_name)
            if ts is None or ts.date() != target_date:
                continue

        events.append(Event(
            event_time=ts.replace(second=0, microsecond=0),
            title=title,
            source=source_name,
            category=item.get("category") or default_category,
            description=item.get("description") or None,
            source_url=item.get("url") or item.get("link") or item.get("href") or None,
            is_important=bool(item.get("important", False)),
            related_stock_code=item.get("stock_code") or None,
            related_stock_name=item.get("stock_name") or None,
        ))
    return events


class JsonApiEventSource:
    """
    url 里可以带 {date}，会替换成 YYYY-MM-DD，例如
    https://api.example.com/calendar?date={date}
    """

    def __init__(self, name: str, url: str, client: httpx.AsyncClient,
                 tz_name: Optional[str] = None, category: str = CATEGORY_EVENT,
                 window_time: time = time(9, 0)):
        self.name = name
        self.url = url
        self.client = client
        self.tz_name = tz_name
        self.category = category
        self.window_time = window_time

    async def fetch(self, target_date: date) -> List[Event]:
        url = self.url.replace("{date}", target_date.isoformat())
        try:
            resp = await self.client.get(url)
            resp.raise_for_status()
            obj = resp.json()
        except httpx.HTTPError as e:
            raise SourceError(self.name, f"GET {url} failed: {e!r}", e) from e
        except ValueError as e:
            raise SourceError(self.name, f"bad JSON from {url}: {e}", e) from e

        events = parse_json(obj, self.name, target_date, self.tz_name, self.category, self.window_time)
        LOG.debug(f"[json] {self.name} {target_date} -> {len(events)} 条")
        return events

    def __repr__(self) -> str:
        return f"JsonApiEventSource({self.name!r}, {self.url!r})"
