# -*- coding: utf-8 -*-
"""
utils.py
通用辅助：
- 日志初始化（控制台 + 可选文件）
- 本地时区的“现在/今天”
- 按词边界编译关键词正则（中英文通用）
"""

import logging
import os
import re
from datetime import date, datetime
from typing import Iterable, Optional

import pytz

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    给 timeline_hub 根 logger 挂上控制台和文件 handler。
    重复调用不会重复挂 handler。
    """
    logger = logging.getLogger("timeline_hub")
    if logger.handlers:
        return logger

    logger.setLevel(level.upper() if isinstance(level, str) else level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        logger.addHandler(fh)
        logger.info(f"Logging to file: {log_file}")

    return logger


def local_now(tz_name: Optional[str] = None) -> datetime:
    """
    返回指定时区的本地时间（去掉 tzinfo，事件时间一律按本地墙钟存）。
    tz_name 为空时用系统本地时间。
    """
    if not tz_name:
        return datetime.now()
    tz = pytz.timezone(tz_name)
    return datetime.now(tz).replace(tzinfo=None)


def local_today(tz_name: Optional[str] = None) -> date:
    return local_now(tz_name).date()


def parse_weekday(value) -> int:
    """'sunday' / 'Sun' / 6 -> 6（Monday=0）"""
    if isinstance(value, int):
        if not 0 <= value <= 6:
            raise ValueError(f"weekday out of range: {value}")
        return value
    s = str(value).strip().lower()
    for i, name in enumerate(WEEKDAYS):
        if name == s or name[:3] == s:
            return i
    raise ValueError(f"unknown weekday: {value!r}")


def compile_terms(terms: Iterable[str], ignore_case: bool = True) -> re.Pattern:
    """
    把一组词编译成一个按“词边界”匹配的正则：
    (?<!\\w)(词1|词2|...)(?!\\w)
    长词优先，避免 "Consumer Price Index" 被 "Consumer" 抢先命中。
    \\b 对韩文/中文同样有效（都算 \\w），所以 "삼성" 不会命中 "삼성바이오로직스"。
    """
    alts = sorted({t for t in terms if t}, key=len, reverse=True)
    body = "|".join(r"\s+".join(re.escape(part) for part in t.split()) for t in alts)
    flags = re.IGNORECASE if ignore_case else 0
    return re.compile(rf"(?<!\w)(?:{body})(?!\w)", flags)
