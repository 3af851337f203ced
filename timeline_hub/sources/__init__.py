# -*- coding: utf-8 -*-
"""
来源注册：ops/sources.yml 里的 type -> 构造函数。
"""

from __future__ import annotations

from datetime import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from ..config import ROOT
from ..models import CATEGORY_EVENT, CATEGORY_NEWS
from .base import EventSource, SourceEntry, SourceRegistry, build_registry
from .calendar_table import CalendarEventSource
from .json_api import JsonApiEventSource
from .rss import RssEventSource
from .sample import SampleEventSource


def _hhmm(raw: Optional[str]) -> time:
    hh, mm = (raw or "09:00").split(":")[:2]
    return time(int(hh), int(mm))


def make_factories(tz_name: Optional[str] = None) -> Dict[str, Any]:
    def rss(spec, registry):
        return RssEventSource(spec["id"], spec["url"], registry.client, tz_name=tz_name,
                              category=spec.get("category", CATEGORY_NEWS),
                              limit=int(spec.get("limit", 20)))

    def json_api(spec, registry):
        return JsonApiEventSource(spec["id"], spec["url"], registry.client, tz_name=tz_name,
                                  category=spec.get("category", CATEGORY_EVENT),
                                  window_time=_hhmm(spec.get("window_time")))

    def calendar(spec, registry):
        path = Path(spec.get("path", "ops/calendar.yml"))
        if not path.is_absolute():
            path = ROOT / path
        return CalendarEventSource(spec["id"], path=path)

    def sample(spec, registry):
        return SampleEventSource(spec.get("id", "Sample"))

    return {"rss": rss, "json": json_api, "calendar": calendar, "sample": sample}


def registry_from_specs(specs: List[Dict[str, Any]], tz_name: Optional[str] = None,
                        client: Optional[httpx.AsyncClient] = None) -> SourceRegistry:
    return build_registry(specs, make_factories(tz_name), client)


__all__ = [
    "EventSource", "SourceEntry", "SourceRegistry", "build_registry", "registry_from_specs",
    "CalendarEventSource", "JsonApiEventSource", "RssEventSource", "SampleEventSource",
]
