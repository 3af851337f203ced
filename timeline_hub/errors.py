# -*- coding: utf-8 -*-
"""
errors.py
异常层级：
- SourceError: 单个来源失败（网络/超时/解析），采集器就地吞掉，只记日志
- StoreError: 持久化失败，对本轮采集是致命的，向上抛给调度器
- ConfigError: 配置文件读不了
"""

from __future__ import annotations

from typing import Optional


class HubError(Exception):
    """timeline_hub 所有自定义异常的基类。"""


class SourceError(HubError):
    def __init__(self, source: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.cause = cause


class StoreError(HubError):
    pass


class ConfigError(HubError):
    pass
