# -*- coding: utf-8 -*-
"""
tests/test_normalizer.py
标题规范化与指纹：
1) canonicalize 幂等、跨来源写法能撞上
2) 短词不会误合并长词（"삼성" vs "삼성바이오로직스"）
3) 精确 hash 对 title / 分钟 / source 都敏感
4) 展示层去重只在同一来源内部生效
"""

from datetime import date, datetime

import pytest

from timeline_hub.normalizer import (
    are_same_event,
    canonicalize,
    cross_source_fingerprint,
    display_normalize,
    fingerprint,
    stamp,
    suppress_display_duplicates,
)

from conftest import DAY, make_event

TITLES = [
    "Samsung Q3 Earnings",
    "[SourceB] 삼성 3분기 실적",
    "🇺🇸 미국 소비자물가지수 (CPI)",
    "US CPI (MoM)",
    "🇺🇸 [Investing.com] 미국 CPI",
    "【토스증권】 삼성전자 3Q 실적발표",
    "삼성 Electronics third quarter earnings",
    "FOMC 금리결정",
    "",
    "   ",
    "삼성바이오로직스 배당금 지급 공시",
    "[삼성전자] 정기주주총회",
    "[청약] 에이비엘바이오 (공모가 확정)",
    "a ((((((((((x))))))))))",
    "[KRX] [미국] CPI",
]


@pytest.mark.parametrize("title", TITLES)
def test_canonicalize_idempotent(title):
    once = canonicalize(title)
    assert canonicalize(once) == once


def test_cross_source_titles_collide():
    assert canonicalize("Samsung Q3 Earnings") == "samsung q3 earnings"
    assert canonicalize("[SourceB] 삼성 3분기 실적", ["SourceB"]) == "samsung q3 earnings"
    assert canonicalize("【토스증권】 삼성전자 3Q 실적발표") == "samsung q3 earnings"

    fp_a = cross_source_fingerprint("Samsung Q3 Earnings", DAY)
    fp_b = cross_source_fingerprint("[SourceB] 삼성 3분기 실적", datetime(2025, 10, 29, 15, 30), ["SourceB"])
    assert fp_a == fp_b


def test_country_flag_and_name_collapse():
    assert canonicalize("🇺🇸 미국 소비자물가지수 (CPI)") == "us cpi"
    assert canonicalize("US CPI (MoM)") == "us cpi"
    assert canonicalize("🇺🇸 [Investing.com] 미국 CPI") == "us cpi"
    assert canonicalize("[미국] CPI") == "us cpi"
    # 小写 "us" 不是国家缩写
    assert canonicalize("tell us more") == "tell us more"


def test_short_term_does_not_merge_longer_word():
    assert canonicalize("삼성 실적") == "samsung earnings"
    assert canonicalize("삼성바이오로직스 실적") == "삼성바이오로직스 earnings"
    assert cross_source_fingerprint("삼성 실적", DAY) != cross_source_fingerprint("삼성바이오로직스 실적", DAY)


def test_cross_source_fingerprint_is_per_day():
    assert cross_source_fingerprint("US CPI", DAY) != cross_source_fingerprint("US CPI", date(2025, 10, 30))


def test_fingerprint_sensitive_to_each_part():
    t = datetime(2025, 10, 29, 9, 0)
    base = fingerprint("삼성전자 실적 발표", t, "DART")
    assert base == fingerprint("삼성전자 실적 발표", t.replace(second=42), "DART")
    assert base != fingerprint("삼성전자 실적 발표 ", t, "DART")
    assert base != fingerprint("삼성전자 실적 발표", t.replace(minute=1), "DART")
    assert base != fingerprint("삼성전자 실적 발표", t, "토스증권")
    assert len(base) == 64


def test_stamp_sets_both_hashes():
    ev = stamp(make_event("US CPI (MoM)", "Investing.com", 21, 30))
    assert ev.hash == fingerprint("US CPI (MoM)", ev.event_time, "Investing.com")
    assert ev.normalized_hash == cross_source_fingerprint("US CPI", DAY)


def test_display_normalize():
    assert display_normalize("🇺🇸 [Investing.com] 미국 CPI") == "cpi"
    assert display_normalize("  삼성전자   실적 발표 ") == "삼성전자 실적 발표"
    assert display_normalize("") == ""
    assert display_normalize("[삼성전자] 정기주주총회") == "삼성전자 정기주주총회"
    assert display_normalize("[KRX] 삼성전자 정기주주총회", ["KRX"]) == "삼성전자 정기주주총회"


def test_are_same_event():
    d = DAY
    assert are_same_event("삼성전자 3분기 실적 발표", "[DART] 삼성전자 3분기 실적 발표", d, d)
    assert are_same_event("삼성전자 3분기 실적 발표", "삼성전자 3분기 실적 발표 (속보)", d, d)
    assert not are_same_event("삼성전자 3분기 실적 발표", "삼성전자 3분기 실적 발표", d, date(2025, 10, 30))
    # 太短的不做包含判断
    assert not are_same_event("CPI", "CPI 발표 예정", d, d)
    assert not are_same_event("삼성 실적 발표", "삼성바이오로직스 실적 발표", d, d)
    assert not are_same_event("[청약] 에이비엘바이오", "[상장] 에이비엘바이오", d, d)


def test_suppress_display_duplicates_within_source_only():
    events = [
        make_event("삼성전자 실적 발표", "토스증권", 9, 0),
        make_event("[토스증권] 삼성전자 실적 발표", "토스증권", 9, 5),
        make_event("삼성전자 실적 발표", "DART", 9, 0),
        make_event("LG전자 배당 공시", "토스증권", 10, 0),
    ]
    kept = suppress_display_duplicates(events)
    assert [(e.source, e.title) for e in kept] == [
        ("토스증권", "삼성전자 실적 발표"),
        ("DART", "삼성전자 실적 발표"),
        ("토스증권", "LG전자 배당 공시"),
    ]


def test_unknown_bracket_prefix_is_kept():
    samsung = canonicalize("[삼성전자] 정기주주총회")
    lg = canonicalize("[LG전자] 정기주주총회")
    assert samsung == "samsung agm"
    assert lg == "lg_electronics agm"
    assert cross_source_fingerprint("[삼성전자] 정기주주총회", DAY) != cross_source_fingerprint("[LG전자] 정기주주총회", DAY)

    assert canonicalize("[청약] 에이비엘바이오") == "청약 에이비엘바이오"
    assert canonicalize("[청약] 에이비엘바이오") != canonicalize("[상장] 에이비엘바이오")

    # 同一个前缀，登记成来源名之后才会被拆掉
    assert canonicalize("[SourceB] 삼성 3분기 실적") == "sourceb samsung q3 earnings"
    assert canonicalize("[KRX] [미국] CPI", ["KRX"]) == "us cpi"


def test_stamp_treats_own_source_as_prefix():
    ev = stamp(make_event("[KRX] 삼성전자 실적", "KRX", 9, 0))
    assert ev.normalized_hash == cross_source_fingerprint("Samsung Earnings", DAY)
    other = stamp(make_event("[KRX] 삼성전자 실적", "sourceA", 9, 0))
    assert other.normalized_hash != ev.normalized_hash


def test_nested_parentheses_removed_in_one_go():
    assert canonicalize("a ((((((((((x))))))))))") == "a"
    assert canonicalize("US CPI ((MoM) 예비)") == "us cpi"
