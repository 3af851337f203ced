# -*- coding: utf-8 -*-
"""
config.py
读取 ops/config.yml 与 ops/sources.yml；文件不存在就用默认。
合并策略：按一级 section 浅合并，避免过度魔法。
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigError

LOG = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[1]
OPS_DIR = ROOT / "ops"
CONFIG_ENV = "TIMELINE_HUB_CONFIG"

DEFAULT_CFG: Dict[str, Any] = {
    "collection": {
        "interval_minutes": 5,
        "retention_days": 30,
        "cleanup_weekday": "sunday",
        "max_concurrent": 3,
        "request_delay_ms": 1000,
        "source_timeout_sec": 30,
    },
    "priority": {
        # 排在前面的来源优先；不在表里的来源排名 unranked_rank
        "order": ["DART", "38커뮤니케이션", "Investing.com", "토스증권"],
        "unranked_rank": 99,
    },
    "database": {
        "path": "timeline.db",
    },
    "logging": {
        "level": "INFO",
        "file": "logs/timeline_hub.log",
    },
    "timezone": "Asia/Seoul",
}


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML 解析失败: {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"读取失败: {path}: {e}") from e


def load_cfg(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    path 优先；其次环境变量 TIMELINE_HUB_CONFIG；最后 ops/config.yml。
    都不存在就返回 DEFAULT_CFG 的拷贝。
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV) or (OPS_DIR / "config.yml")
    p = Path(path)

    out = copy.deepcopy(DEFAULT_CFG)
    if not p.exists():
        LOG.warning(f"[config] 未找到 {p}，使用默认配置")
        return out

    data = _read_yaml(p) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{p} 顶层必须是 mapping")

    for key, value in data.items():
        # "collection:" 下面什么都没写 -> None，保留默认段
        if value is None and key in out:
            continue
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = {**out[key], **value}
        else:
            out[key] = value
    return out


def load_sources(path: Optional[Union[str, Path]] = None) -> List[Dict[str, Any]]:
    """ops/sources.yml -> [{id, type, enabled, ...}]；缺文件返回空列表。"""
    p = Path(path) if path else OPS_DIR / "sources.yml"
    if not p.exists():
        LOG.warning(f"[config] 未找到 {p}，没有可用来源")
        return []
    data = _read_yaml(p) or {}
    sources = data.get("sources", []) if isinstance(data, dict) else data
    if not isinstance(sources, list):
        raise ConfigError(f"{p}: sources 必须是列表")
    return [s for s in sources if isinstance(s, dict)]
