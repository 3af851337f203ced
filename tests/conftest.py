# -*- coding: utf-8 -*-
"""
测试公用：内存里的假来源 + 临时 SQLite 路径。
"""

import asyncio
from datetime import date, datetime, time
from typing import List, Optional

import pytest

from timeline_hub.models import Event

DAY = date(2025, 10, 29)


def make_event(title: str, source: str, hh: int = 9, mm: int = 0, day: date = DAY, **kw) -> Event:
    return Event(event_time=datetime.combine(day, time(hh, mm)), title=title, source=source, **kw)


class FakeSource:
    """按固定列表返回事件；可以模拟延迟、异常、调用记录。"""

    def __init__(self, name: str, events: Optional[List[Event]] = None,
                 delay: float = 0.0, error: Optional[BaseException] = None):
        self.name = name
        self.events = events or []
        self.delay = delay
        self.error = error
        self.calls: List[date] = []

    async def fetch(self, target_date: date) -> List[Event]:
        self.calls.append(target_date)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        # 每次都给新对象，和真实来源一样
        return [
            Event(event_time=e.event_time, title=e.title, source=e.source,
                  category=e.category, is_important=e.is_important)
            for e in self.events
        ]


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "timeline_test.db"
