# -*- coding: utf-8 -*-
"""
normalizer.py
标题规范化与指纹（纯函数，无 I/O）：

display_normalize  展示层去重用：去国旗、去开头的国家/来源装饰、压空白、小写
canonicalize       跨来源身份用：国旗/国家名 -> 统一 token，去来源前缀与括号限定语，
                   季度写法统一，经济指标/报告类型/常见发行人做中英韩同义词映射
fingerprint        sha256(title|YYYYMMDDHHMM|source)   精确身份，库内唯一
cross_source_fingerprint  sha256(canonicalize(title)|YYYYMMDD)  跨来源身份

所有匹配都按词边界，不用裸 contains，避免短子串误合并。
"""

from __future__ import annotations

import hashlib
import re
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from .models import Event
from .utils import compile_terms

# -------------------- 词表 --------------------

# 只认这几面旗，其余国旗直接去掉
FLAG_TOKENS = {
    "\U0001F1FA\U0001F1F8": "us",
    "\U0001F1F0\U0001F1F7": "kr",
    "\U0001F1EF\U0001F1F5": "jp",
    "\U0001F1E8\U0001F1F3": "cn",
    "\U0001F1EA\U0001F1FA": "eu",
}
_FLAG_RE = re.compile("[\U0001F1E6-\U0001F1FF]{2}")

COUNTRY_NAMES = {
    "us": ["United States", "USA", "U.S.", "미국"],
    "kr": ["South Korea", "Korea", "한국"],
    "jp": ["Japan", "일본"],
    "cn": ["China", "중국"],
    "eu": ["Eurozone", "Euro Area", "Europe", "유럽"],
}

# 两字母缩写大小写敏感："US" 是美国，"us" 不是
COUNTRY_CODES = {"US": "us", "KR": "kr", "JP": "jp", "CN": "cn", "EU": "eu"}

SYNONYMS = {
    # 经济指标
    "cpi": ["CPI", "Consumer Price Index", "소비자물가지수", "소비자물가"],
    "ppi": ["PPI", "Producer Price Index", "생산자물가지수", "생산자물가"],
    "gdp": ["GDP", "Gross Domestic Product", "국내총생산"],
    "pmi": ["PMI", "Purchasing Managers Index", "Purchasing Managers' Index", "구매관리자지수"],
    "pce": ["PCE", "Personal Consumption Expenditures", "개인소비지출"],
    "ism": ["ISM", "공급관리협회"],
    "fomc": ["FOMC", "Federal Open Market Committee", "연방공개시장위원회"],
    "nfp": ["NFP", "Nonfarm Payrolls", "Non-Farm Payrolls", "비농업고용", "비농업 고용", "비농업부문 고용"],
    "unemployment_rate": ["Unemployment Rate", "실업률"],
    "retail_sales": ["Retail Sales", "소매판매"],
    "industrial_production": ["Industrial Production", "산업생산"],
    "consumer_confidence": ["Consumer Confidence", "Consumer Confidence Index", "소비자신뢰", "소비자신뢰지수"],
    "trade_balance": ["Trade Balance", "무역수지"],
    "rate_decision": ["Interest Rate Decision", "Rate Decision", "금리결정", "금리 결정"],
    # 报告/事件类型
    "earnings": ["Earnings", "Earnings Release", "Earnings Report", "Earnings Announcement",
                 "실적", "실적발표", "실적 발표", "잠정실적"],
    "dividend": ["Dividend", "배당", "배당금"],
    "agm": ["AGM", "Annual General Meeting", "주주총회", "정기주주총회"],
    "ipo": ["IPO", "기업공개"],
    "lockup": ["Lock-up Expiry", "Lockup Expiry", "Lock-up Release", "의무보호해제", "보호예수 해제"],
    # 常见发行人
    "samsung": ["Samsung", "Samsung Electronics", "Samsung Elec", "삼성", "삼성전자"],
    "sk_hynix": ["SK Hynix", "SK하이닉스", "하이닉스"],
    "hyundai_motor": ["Hyundai Motor", "Hyundai Motors", "현대차", "현대자동차"],
    "lg_electronics": ["LG Electronics", "LG전자"],
    "naver": ["NAVER", "네이버"],
    "kakao": ["Kakao", "카카오"],
}


def _collapse(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip()


def _build_lookup() -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for table in (SYNONYMS, COUNTRY_NAMES):
        for token, variants in table.items():
            for v in variants:
                lookup[_collapse(v).lower()] = token
    return lookup


_TOKEN_LOOKUP = _build_lookup()
_TOKEN_RE = compile_terms(
    [v for table in (SYNONYMS, COUNTRY_NAMES) for vs in table.values() for v in vs]
)
_CODE_RE = compile_terms(COUNTRY_CODES.keys(), ignore_case=False)

# 开头的方括号装饰：[DART] / 【토스증권】 / [미국] / [삼성전자]，最多 40 字
_LEADING_BRACKET_RE = re.compile(r"^\s*[\[【]([^\]】\[【]{1,40})[\]】]\s*")
# 开头的圆括号只认国家和来源名：(미국) / (DART)；其余当限定语交给 _PAREN_RE
_LEADING_PAREN_RE = re.compile(r"^\s*[(（]([^()（）]{1,40})[)）]\s*")
_PAREN_RE = re.compile(r"\s*[(（][^()（）]*[)）]\s*")
_SEPARATOR_RE = re.compile(r"[,:;·|/]+")

# 标题里常见的来源名前缀；配置里的来源名会在运行时追加
DEFAULT_SOURCE_NAMES = ("Investing.com", "토스증권", "DART", "38커뮤니케이션")

_ORDINAL = {"first": "1", "second": "2", "third": "3", "fourth": "4",
            "1st": "1", "2nd": "2", "3rd": "3", "4th": "4"}
_QUARTER_RES = [
    (re.compile(r"(?<!\w)q([1-4])(?!\w)", re.IGNORECASE), r"q\1"),
    (re.compile(r"(?<!\w)([1-4])q(?!\w)", re.IGNORECASE), r"q\1"),
    (re.compile(r"(?<!\d)([1-4])\s*분기"), r"q\1"),
    (re.compile(r"(?<!\w)(first|second|third|fourth|1st|2nd|3rd|4th)\s+quarter(?!\w)", re.IGNORECASE),
     lambda m: "q" + _ORDINAL[m.group(1).lower()]),
]

# display 层用：开头的“裸”国家词，如 "미국 CPI" / "US CPI"
_BARE_COUNTRY_PREFIX_RE = re.compile(
    r"^(?:"
    + "|".join(re.escape(v) for vs in COUNTRY_NAMES.values() for v in sorted(vs, key=len, reverse=True))
    + "|" + "|".join(COUNTRY_CODES)
    + r")\s+"
)

_QUOTES = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"'})


# -------------------- 规范化 --------------------

def _name_set(source_names: Optional[Iterable[str]] = None) -> FrozenSet[str]:
    names = list(DEFAULT_SOURCE_NAMES) + list(source_names or ())
    return frozenset(_collapse(n).casefold() for n in names if n and n.strip())


def _split_decoration(s: str, names: FrozenSet[str]) -> Tuple[List[str], List[str], str]:
    """
    拆开头的括号前缀，返回 (国家 token, 保留下来的括号内容, 剩余标题)：
    - 国家：[미국] / (US) -> "us"
    - 来源名：[DART] / 【토스증권】 -> 丢掉
    - 其他方括号（公司名、[청약]/[상장] 这类）：去掉括号、内容保留，它们是事件本身的一部分
    - 其他圆括号：不动，后面按限定语处理
    """
    countries: List[str] = []
    kept: List[str] = []
    while True:
        m = _LEADING_BRACKET_RE.match(s) or _LEADING_PAREN_RE.match(s)
        if not m:
            break
        inner = _collapse(m.group(1))
        token = COUNTRY_CODES.get(inner) or _TOKEN_LOOKUP.get(inner.lower())
        if token in COUNTRY_NAMES:
            countries.append(token)
        elif inner.casefold() in names:
            pass
        elif m.re is _LEADING_PAREN_RE:
            break
        else:
            kept.append(inner)
        s = s[m.end():]
    return countries, kept, s


def display_normalize(title: str, source_names: Optional[Iterable[str]] = None) -> str:
    """展示层去重用的轻量规范化。"""
    if not title or not title.strip():
        return ""
    names = _name_set(source_names)
    s = _FLAG_RE.sub("", title).translate(_QUOTES).strip()

    # 开头的装饰可能叠好几层："🇺🇸 [Investing.com] 미국 CPI"
    while True:
        _, kept, s = _split_decoration(s, names)
        if kept:
            s = " ".join(kept + [s])
            break
        m = _BARE_COUNTRY_PREFIX_RE.match(s)
        if not m:
            break
        s = s[m.end():]

    return _collapse(s).lower()


def canonicalize(title: str, source_names: Optional[Iterable[str]] = None) -> str:
    """
    跨来源身份用的激进规范化，幂等：canonicalize(canonicalize(x)) == canonicalize(x)。
    例：
        "Samsung Q3 Earnings"        -> "samsung q3 earnings"
        "[토스증권] 삼성 3분기 실적"    -> "samsung q3 earnings"
        "[삼성전자] 정기주주총회"       -> "samsung agm"
        "🇺🇸 CPI (MoM)"               -> "us cpi"
    source_names: 额外要当作来源前缀拆掉的名字（默认只有 DEFAULT_SOURCE_NAMES）。
    替换后可能拼出新的同义词（"삼성 Electronics" -> "samsung electronics"），
    所以反复跑到不动点为止。
    """
    if not title or not title.strip():
        return ""

    names = _name_set(source_names)
    seen = set()
    s = title
    while s not in seen:
        seen.add(s)
        out = _canonical_pass(s, names)
        if out == s:
            break
        s = out
    return s


def _strip_parens(s: str) -> str:
    # 由内向外剥，嵌套几层都一次剥完
    while True:
        out = _PAREN_RE.sub(" ", s)
        if out == s:
            return s
        s = out


def _canonical_pass(title: str, names: FrozenSet[str]) -> str:
    s = title.translate(_QUOTES)
    # 国旗一律提到最前面，后面的 [来源] 前缀才能被当成开头装饰拆掉
    prefix_tokens = [FLAG_TOKENS[f] for f in _FLAG_RE.findall(s) if f in FLAG_TOKENS]
    s = _FLAG_RE.sub(" ", s)

    countries, kept, s = _split_decoration(s.strip(), names)
    prefix_tokens += countries
    s = " ".join(kept + [s])

    # 括号限定语：(MoM) (YoY) (예비치) (속보) ...
    s = _strip_parens(s)
    s = _SEPARATOR_RE.sub(" ", s)
    s = _collapse(s)

    for pattern, repl in _QUARTER_RES:
        s = pattern.sub(repl, s)

    s = _TOKEN_RE.sub(lambda m: _TOKEN_LOOKUP[_collapse(m.group(0)).lower()], s)
    s = _CODE_RE.sub(lambda m: COUNTRY_CODES[m.group(0)], s)

    # "🇺🇸 미국 CPI" -> "us us cpi" -> "us cpi"
    words: List[str] = []
    for w in " ".join(prefix_tokens + [s]).lower().split():
        if not words or words[-1] != w:
            words.append(w)
    return " ".join(words)


# -------------------- 指纹 --------------------

def _digest(material: str) -> str:
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def fingerprint(title: str, event_time: datetime, source: str) -> str:
    """精确身份：同一来源、同一标题、同一分钟 -> 同一 hash。"""
    return _digest(f"{title}|{event_time:%Y%m%d%H%M}|{source}")


def cross_source_fingerprint(title: str, event_date: Union[date, datetime],
                             source_names: Optional[Iterable[str]] = None) -> str:
    """跨来源身份：不含来源、只到日期，不同来源不同时刻报同一事件也会撞上。"""
    return _digest(f"{canonicalize(title, source_names)}|{event_date:%Y%m%d}")


def stamp(event: Event, source_names: Optional[Iterable[str]] = None) -> Event:
    """给事件盖上两个 hash（原地修改并返回）。事件自己的来源名也算来源前缀。"""
    names = list(source_names or ()) + [event.source]
    event.hash = fingerprint(event.title, event.event_time, event.source)
    event.normalized_hash = cross_source_fingerprint(event.title, event.event_time, names)
    return event


# -------------------- 展示层去重 --------------------

def _contains_at_boundary(longer: str, shorter: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(shorter)}(?!\w)", longer) is not None


def are_same_event(title1: str, title2: str,
                   date1: Union[date, datetime], date2: Union[date, datetime],
                   source_names: Optional[Iterable[str]] = None) -> bool:
    """
    两个标题是否同一事件（展示层）：
    - 日期不同：不是
    - display_normalize 后相等：是
    - 都长于 5 个字符，且一个在另一个里按词边界出现：是
    """
    d1 = date1.date() if isinstance(date1, datetime) else date1
    d2 = date2.date() if isinstance(date2, datetime) else date2
    if d1 != d2:
        return False

    names = list(source_names or ())
    n1, n2 = display_normalize(title1, names), display_normalize(title2, names)
    if not n1 or not n2:
        return False
    if n1 == n2:
        return True
    if len(n1) > 5 and len(n2) > 5:
        longer, shorter = (n1, n2) if len(n1) >= len(n2) else (n2, n1)
        return _contains_at_boundary(longer, shorter)
    return False


def suppress_display_duplicates(events: Iterable[Event],
                                source_names: Optional[Iterable[str]] = None) -> List[Event]:
    """同一来源自己的结果里，标题近似的只留第一条；顺序保持不变。"""
    extra = list(source_names or ())
    kept: List[Event] = []
    by_source: Dict[str, List[Event]] = defaultdict(list)
    for ev in events:
        seen = by_source[ev.source]
        names = extra + [ev.source]
        if any(are_same_event(ev.title, k.title, ev.event_time, k.event_time, names) for k in seen):
            continue
        seen.append(ev)
        kept.append(ev)
    return kept
