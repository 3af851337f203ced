# -*- coding: utf-8 -*-
"""
reconcile.py
一轮采集的候选事件 -> 本轮新增事件。

1) 给每条候选盖 hash / normalized_hash
2) 按 normalized_hash 分组
3) 每组按来源优先级（数字小的赢）选一条，平手看 created_at，再平手看采集顺序
4) 赢家里去掉：当天库里已有同 normalized_hash 的；库里已有同 hash 的
5) 剩下的就是新增，顺手把它们的 normalized_hash 加进内存集合
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .models import Event
from .normalizer import stamp

LOG = logging.getLogger(__name__)

DEFAULT_UNRANKED = 99


class SourcePriority:
    """
    来源优先级表：order 里越靠前越优先（rank 从 1 开始），大小写不敏感。
    不在表里的来源一律 unranked_rank。
    """

    def __init__(self, order: Sequence[str] = (), unranked_rank: int = DEFAULT_UNRANKED):
        self.order = list(order)
        self.unranked_rank = unranked_rank
        self._ranks: Dict[str, int] = {}
        for i, name in enumerate(self.order, start=1):
            self._ranks.setdefault(name.strip().casefold(), i)

    @classmethod
    def from_cfg(cls, cfg: dict) -> "SourcePriority":
        p = cfg.get("priority", {}) or {}
        return cls(p.get("order", []) or [], int(p.get("unranked_rank", DEFAULT_UNRANKED)))

    def rank(self, source: str) -> int:
        return self._ranks.get((source or "").strip().casefold(), self.unranked_rank)

    def __repr__(self) -> str:
        return f"SourcePriority({self.order!r}, unranked_rank={self.unranked_rank})"


@dataclass
class ReconcileResult:
    admitted: List[Event] = field(default_factory=list)
    # 被同组更高优先级来源顶掉的
    superseded: List[Event] = field(default_factory=list)
    # 赢家但库里已有（跨来源重复或同来源重采）
    duplicates: List[Event] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.admitted)


class ReconciliationEngine:
    def __init__(self, priority: Optional[SourcePriority] = None, source_names: Iterable[str] = ()):
        self.priority = priority or SourcePriority()
        # 标题里出现 [来源名] 前缀时要拆掉的名字：优先级表 + 注册过的来源
        self.source_names: List[str] = []
        self.add_source_names(self.priority.order)
        self.add_source_names(source_names)

    def add_source_names(self, names: Iterable[str]) -> None:
        known = {n.casefold() for n in self.source_names}
        for name in names:
            if name and name.casefold() not in known:
                known.add(name.casefold())
                self.source_names.append(name)

    def stamp(self, ev: Event) -> Event:
        return stamp(ev, self.source_names)

    def _sort_key(self, indexed):
        idx, ev = indexed
        return (self.priority.rank(ev.source), ev.created_at, idx)

    def group(self, events: Iterable[Event]) -> Dict[str, List[Event]]:
        """按 normalized_hash 分组；dict 保持首次出现的顺序。"""
        groups: Dict[str, List[Event]] = {}
        for ev in events:
            if not ev.normalized_hash:
                self.stamp(ev)
            groups.setdefault(ev.normalized_hash, []).append(ev)
        return groups

    def pick_winner(self, group: Sequence[Event]) -> Event:
        return min(enumerate(group), key=self._sort_key)[1]

    def select_winners(self, events: Iterable[Event]) -> List[Event]:
        """每个跨来源组只留一条（读路径也用）。"""
        return [self.pick_winner(g) for g in self.group(events).values()]

    def reconcile(
        self,
        candidates: Iterable[Event],
        existing_fingerprints: Set[str],
        existing_hashes: Optional[Set[str]] = None,
    ) -> ReconcileResult:
        """
        existing_fingerprints: 当天已入库事件的 normalized_hash 集合，会被原地更新
        existing_hashes: 库里已存在的精确 hash（只需覆盖本批候选）
        """
        existing_hashes = existing_hashes or set()
        result = ReconcileResult()

        candidates = [self.stamp(ev) for ev in candidates]

        for fp, members in self.group(candidates).items():
            winner = self.pick_winner(members)
            result.superseded.extend(m for m in members if m is not winner)

            if fp in existing_fingerprints or winner.hash in existing_hashes:
                result.duplicates.append(winner)
                continue

            result.admitted.append(winner)
            existing_fingerprints.add(fp)

        LOG.debug(
            f"[reconcile] admitted={len(result.admitted)} "
            f"superseded={len(result.superseded)} duplicates={len(result.duplicates)}"
        )
        return result
