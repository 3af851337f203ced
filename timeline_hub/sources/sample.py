# -*- coding: utf-8 -*-
"""
sources/sample.py
本地样例数据来源：按日期做种子，同一天永远生成同一批事件。
用于演示与端到端测试（重复采集应当 0 新增）。
"""

from __future__ import annotations

import random
from datetime import date, datetime, time
from typing import List

from ..models import CATEGORY_DISCLOSURE, CATEGORY_EARNINGS, CATEGORY_NEWS, Event

COMPANIES = [
    ("삼성전자", "005930"), ("SK하이닉스", "000660"), ("현대차", "005380"),
    ("LG전자", "066570"), ("POSCO홀딩스", "005490"), ("네이버", "035420"),
    ("카카오", "035720"), ("삼성바이오로직스", "207940"), ("셀트리온", "068270"),
    ("기아", "000270"), ("삼성SDI", "006400"), ("LG화학", "051910"),
]

# (模板, 分类, 是否重要)
TEMPLATES = [
    ("{0} 실적 발표 예정", CATEGORY_EARNINGS, True),
    ("{0} 신규 투자 계획 발표", CATEGORY_NEWS, False),
    ("{0} 배당금 지급 공시", CATEGORY_DISCLOSURE, True),
    ("{0} 주요 임원 인사", CATEGORY_NEWS, False),
    ("{0} 신제품 출시 발표", CATEGORY_NEWS, False),
    ("{0} 해외 시장 진출 발표", CATEGORY_NEWS, False),
    ("{0} 설비 투자 확대", CATEGORY_DISCLOSURE, False),
    ("{0} 주주총회 개최 안내", CATEGORY_DISCLOSURE, False),
    ("증시 분석: {0} 목표가 상향", CATEGORY_NEWS, False),
    ("{0} 외국인 매수 증가", CATEGORY_NEWS, False),
]


class SampleEventSource:
    def __init__(self, name: str = "Sample", min_events: int = 5, max_events: int = 8):
        self.name = name
        self.min_events = min_events
        self.max_events = max_events

    async def fetch(self, target_date: date) -> List[Event]:
        rng = random.Random(target_date.toordinal())
        events: List[Event] = []
        used = set()

        for _ in range(rng.randint(self.min_events, self.max_events)):
            company, code = rng.choice(COMPANIES)
            template, category, important = rng.choice(TEMPLATES)
            title = template.format(company)
            if title in used:
                continue
            used.add(title)

            at = time(rng.randint(8, 17), rng.choice([0, 10, 20, 30, 40, 50]))
            events.append(Event(
                event_time=datetime.combine(target_date, at),
                title=title,
                source=self.name,
                category=category,
                is_important=important,
                related_stock_code=code,
                related_stock_name=company,
            ))
        return events

    def __repr__(self) -> str:
        return f"SampleEventSource({self.name!r})"
