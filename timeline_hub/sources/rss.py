# -*- coding: utf-8 -*-
"""
sources/rss.py
RSS/Atom 新闻来源：httpx 拉取 + feedparser 解析，只保留目标日期当天发布的条目。
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from typing import Any, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import feedparser
import httpx
import pytz

from ..errors import SourceError
from ..models import CATEGORY_NEWS, Event

LOG = logging.getLogger(__name__)


def normalize_link(url: Optional[str]) -> Optional[str]:
    """
    规范化链接：去掉 utm_*、ref/ref_src 等统计参数，去掉 fragment。
    """
    if not url:
        return url
    u = urlparse(url)
    qs = [
        (k, v)
        for (k, v) in parse_qsl(u.query, keep_blank_values=True)
        if not k.lower().startswith("utm_") and k.lower() not in {"ref", "ref_src"}
    ]
    return urlunparse((u.scheme, u.netloc, u.path, u.params, urlencode(qs, doseq=True), ""))


def _published_local(entry: Any, tz_name: Optional[str]) -> Optional[datetime]:
    """
    feedparser 的 *_parsed 是 UTC 的 struct_time；转成本地墙钟时间。
    两个字段都没有就返回 None（这条不要了）。
    """
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    utc = datetime.fromtimestamp(calendar.timegm(parsed), tz=pytz.utc)
    if tz_name:
        return utc.astimezone(pytz.timezone(tz_name)).replace(tzinfo=None, second=0, microsecond=0)
    return utc.astimezone().replace(tzinfo=None, second=0, microsecond=0)


def _clean(text: str) -> str:
    return " ".join((text or "").split())


def parse_rss(text: str, source_name: str, target_date: date,
              tz_name: Optional[str] = None, category: str = CATEGORY_NEWS,
              limit: int = 20) -> List[Event]:
    """
    解析 RSS/Atom 文本，返回目标日期当天的事件。
    没标题、没发布时间的条目直接丢掉。
    """
    feed = feedparser.parse(text)
    events: List[Event] = []

    # 限制一次处理数量，避免超长列表引发抖动
    for entry in feed.get("entries", [])[:limit]:
        title = _clean(entry.get("title", ""))
        if not title:
            continue
        ts = _published_local(entry, tz_name)
        if ts is None or ts.date() != target_date:
            continue

        summary = _clean(entry.get("summary", ""))
        events.append(Event(
            event_time=ts,
            title=title,
            source=source_name,
            category=category,
            description=(summary[:200] + "...") if len(summary) > 200 else (summary or None),
            source_url=normalize_link(entry.get("link") or entry.get("id")),
        ))
    return events


class RssEventSource:
    def __init__(self, name: str, url: str, client: httpx.AsyncClient,
                 tz_name: Optional[str] = None, category: str = CATEGORY_NEWS, limit: int = 20):
        self.name = name
        self.url = url
        self.client = client
        self.tz_name = tz_name
        self.category = category
        self.limit = limit

    async def fetch(self, target_date: date) -> List[Event]:
        try:
            resp = await self.client.get(self.url)
        except httpx.HTTPError as e:
            raise SourceError(self.name, f"GET {self.url} failed: {e!r}", e) from e
        if resp.status_code != 200:
            raise SourceError(self.name, f"GET {self.url} status={resp.status_code}")

        events = parse_rss(resp.text, self.name, target_date, self.tz_name, self.category, self.limit)
        LOG.debug(f"[rss] {self.name} {target_date} -> {len(events)} 条")
        return events

    def __repr__(self) -> str:
        return f"RssEventSource({self.name!r}, {self.url!r})"
