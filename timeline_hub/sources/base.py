# -*- coding: utf-8 -*-
"""
sources/base.py
来源（EventSource）约定 + 注册表。

来源只需满足两点：
    name: str
    async def fetch(target_date: date) -> list[Event]   # 失败就抛异常
不要求继承任何基类。传输、解析、来源自己的规则表都由来源自己管。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from ..models import Event

LOG = logging.getLogger(__name__)

USER_AGENT = "timeline-hub/1.0"


@runtime_checkable
class EventSource(Protocol):
    name: str

    async def fetch(self, target_date: date) -> List[Event]: ...


@dataclass
class SourceEntry:
    source: EventSource
    enabled: bool = True

    @property
    def name(self) -> str:
        return self.source.name


class SourceRegistry:
    """
    来源集合，顺序即采集结果的拼接顺序（优先级平手时的最后一道判据）。
    http 类来源共用 registry 持有的一个 httpx.AsyncClient，关闭时一起关。
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._entries: List[SourceEntry] = []
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=15.0, follow_redirects=True, headers={"User-Agent": USER_AGENT}
            )
        return self._client

    def register(self, source: EventSource, enabled: bool = True) -> EventSource:
        if not isinstance(source, EventSource):
            raise TypeError(f"not an EventSource: {source!r}")
        if any(e.name == source.name for e in self._entries):
            raise ValueError(f"duplicate source name: {source.name}")
        self._entries.append(SourceEntry(source, enabled))
        return source

    def set_enabled(self, name: str, enabled: bool) -> None:
        for e in self._entries:
            if e.name == name:
                e.enabled = enabled
                return
        raise KeyError(name)

    def enabled(self) -> List[EventSource]:
        return [e.source for e in self._entries if e.enabled]

    def names(self) -> List[str]:
        return [e.name for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


SourceFactory = Callable[[Dict[str, Any], SourceRegistry], EventSource]


def build_registry(specs: List[Dict[str, Any]], factories: Dict[str, SourceFactory],
                   client: Optional[httpx.AsyncClient] = None) -> SourceRegistry:
    """
    按 ops/sources.yml 的条目构造注册表。
    enabled: false 的照样注册（可以运行时打开），未知 type 记日志跳过。
    """
    registry = SourceRegistry(client)
    for spec in specs:
        t = (spec.get("type", "") or "").strip().lower()
        factory = factories.get(t)
        if factory is None:
            LOG.warning(f"[sources] 未知类型: {t!r} ({spec.get('id')})，跳过")
            continue
        try:
            registry.register(factory(spec, registry), enabled=bool(spec.get("enabled", True)))
        except (KeyError, ValueError, TypeError) as e:
            # 缺字段 / 重名
            LOG.warning(f"[sources] 配置错误 {spec.get('id')}: {e!r}，跳过")

    LOG.info(f"[sources] 已注册 {len(registry)} 个来源: {', '.join(registry.names())}")
    return registry
