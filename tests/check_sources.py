# -*- coding: utf-8 -*-
"""
手动检查 ops/sources.yml 里每个来源能不能用：各抓一次，打印条数或错误。
不写库。
Usage:
    python tests/check_sources.py [--date 2025-10-29] [--all]
"""
import argparse
import asyncio
from datetime import date

from timeline_hub.config import load_cfg, load_sources
from timeline_hub.sources import registry_from_specs
from timeline_hub.utils import local_today, setup_logging


async def check_one(source, target: date):
    try:
        events = await asyncio.wait_for(source.fetch(target), timeout=30)
    except Exception as e:
        return (source.name, "ERR", repr(e))
    return (source.name, "OK", f"{len(events)} events")


async def main(target: date, include_disabled: bool):
    cfg = load_cfg()
    setup_logging("WARNING")
    registry = registry_from_specs(load_sources(), tz_name=cfg.get("timezone"))
    enabled = {s.name for s in registry.enabled()}
    try:
        results = []
        for name in registry.names():
            if name not in enabled and not include_disabled:
                results.append((name, "SKIP", "disabled"))
                continue
            registry.set_enabled(name, True)
        for source in registry.enabled():
            results.append(await check_one(source, target))
    finally:
        await registry.aclose()

    # 打印汇总
    ok = [r for r in results if r[1] == "OK"]
    bad = [r for r in results if r[1] == "ERR"]
    skip = [r for r in results if r[1] == "SKIP"]
    print(f"\n=== OK ({target}) ===")
    for i, _, k in ok: print(f"{i:20} {k}")
    print("\n=== PROBLEM ===")
    for i, _, k in bad: print(f"{i:20} {k}")
    print("\n=== SKIPPED ===")
    for i, _, k in skip: print(f"{i:20} {k}")


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--date", type=date.fromisoformat)
    ap.add_argument("--all", action="store_true", help="disabled 的来源也抓")
    args = ap.parse_args()
    cfg_tz = load_cfg().get("timezone")
    asyncio.run(main(args.date or local_today(cfg_tz), args.all))
