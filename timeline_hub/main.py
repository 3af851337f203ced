# -*- coding: utf-8 -*-
# timeline_hub/main.py
# 串起：sources -> collector(限流 + 对账) -> storage，scheduler 负责定时与每周清理
#
#   python -m timeline_hub.main                    # 常驻
#   python -m timeline_hub.main --run-seconds 60   # 跑 60 秒
#   python -m timeline_hub.main --once --date 2025-10-29
#   python -m timeline_hub.main --cleanup

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from .collector import CollectionOrchestrator
from .config import ROOT, load_cfg, load_sources
from .ratelimit import RateLimiter
from .reconcile import ReconciliationEngine, SourcePriority
from .scheduler import Scheduler
from .sources import registry_from_specs
from .storage import SqliteEventStore
from .utils import setup_logging

LOG = logging.getLogger("timeline_hub.main")


def _resolve(path: str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else ROOT / p


async def build(cfg: dict, sources_path: Optional[str] = None):
    """按配置组装 store / registry / orchestrator，返回 (store, registry, orchestrator)。"""
    coll = cfg["collection"]
    tz_name = cfg.get("timezone")

    store = await SqliteEventStore.open(_resolve(cfg["database"]["path"]))
    registry = registry_from_specs(load_sources(sources_path), tz_name=tz_name)
    limiter = RateLimiter(int(coll["max_concurrent"]), int(coll["request_delay_ms"]))
    engine = ReconciliationEngine(SourcePriority.from_cfg(cfg))
    orchestrator = CollectionOrchestrator(
        registry, store, limiter, engine,
        source_timeout=float(coll["source_timeout_sec"]),
        tz_name=tz_name,
    )
    return store, registry, orchestrator


async def main(run_seconds: int = 0, once: bool = False, target: Optional[date] = None,
               cleanup: bool = False, config_path: Optional[str] = None,
               sources_path: Optional[str] = None) -> int:
    cfg = load_cfg(config_path)
    setup_logging(cfg["logging"].get("level", "INFO"), cfg["logging"].get("file"))
    coll = cfg["collection"]

    store, registry, orchestrator = await build(cfg, sources_path)
    scheduler: Optional[Scheduler] = None
    try:
        if once or cleanup:
            if once:
                n = await (orchestrator.collect(target) if target else orchestrator.collect_today())
                LOG.info(f"[main] 单次采集完成，新增 {n} 条")
            if cleanup:
                await orchestrator.cleanup_old_events(int(coll["retention_days"]))
            return 0

        scheduler = Scheduler(
            orchestrator,
            interval_minutes=float(coll["interval_minutes"]),
            retention_days=int(coll["retention_days"]),
            cleanup_weekday=coll.get("cleanup_weekday", "sunday"),
            tz_name=cfg.get("timezone"),
        )
        scheduler.start()

        LOG.info(f"[main] running for {run_seconds or 'forever'}s …")
        if run_seconds and run_seconds > 0:
            await asyncio.sleep(run_seconds)
        else:
            # 0 或负数 => 常驻，直到调度器被停掉
            await scheduler.wait_stopped()
        return 0
    except asyncio.CancelledError:
        LOG.info("[main] cancelled")
        raise
    finally:
        # 优雅退出
        if scheduler is not None:
            await scheduler.shutdown()
        await registry.aclose()
        await store.close()
        LOG.info("[main] finished")


def cli(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="timeline-hub")
    parser.add_argument("--config", help="config.yml 路径（默认 ops/config.yml 或 $TIMELINE_HUB_CONFIG）")
    parser.add_argument("--sources", help="sources.yml 路径（默认 ops/sources.yml）")
    parser.add_argument("--run-seconds", type=int, default=0)
    parser.add_argument("--once", action="store_true", help="只采集一次然后退出")
    parser.add_argument("--date", type=date.fromisoformat, help="配合 --once 指定日期 YYYY-MM-DD")
    parser.add_argument("--cleanup", action="store_true", help="执行一次过期清理然后退出")
    args = parser.parse_args(argv)

    try:
        return asyncio.run(main(
            run_seconds=args.run_seconds, once=args.once, target=args.date,
            cleanup=args.cleanup, config_path=args.config, sources_path=args.sources,
        ))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(cli())
