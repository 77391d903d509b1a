from __future__ import annotations

"""
Portfolio Backtester — 데이터 주기 감지

날짜 간격의 중앙값으로 샘플링 주기(일/주/월/분기/연)를 추정하고 연율화 계수를 반환합니다.
샤프/소르티노/CAGR 계산이 입력 주기와 무관하게 동작하도록 하는 역할입니다.

Used by:
    - src.backtest.analyzer (compute_stats)
"""
from typing import Sequence

from src.core.dates import to_datetime

SAMPLE_SIZE = 100

DAILY = 252
WEEKLY = 52
MONTHLY = 12
QUARTERLY = 4
ANNUAL = 1

# (중앙값 간격 상한(일), 연율화 계수)
_THRESHOLDS = [
    (5, DAILY),       # 주말 포함 1~3일 간격
    (12, WEEKLY),     # ~7일
    (45, MONTHLY),    # ~30일
    (120, QUARTERLY), # ~90일
]

_LABELS = {
    DAILY: "Daily",
    WEEKLY: "Weekly",
    MONTHLY: "Monthly",
    QUARTERLY: "Quarterly",
    ANNUAL: "Annual",
}


def detect_annualization_factor(dates: Sequence[str]) -> int:
    """
    날짜 시퀀스의 연율화 계수 추정.

    앞쪽 최대 100개 샘플의 양수 간격만 사용하며, 중앙값은 정렬된 간격의
    len // 2 번째 원소입니다. 날짜 3개 미만이면 일간(252)으로 간주합니다.
    """
    if len(dates) < 3:
        return DAILY

    sample = [to_datetime(d) for d in dates[:SAMPLE_SIZE]]
    gaps = []
    for prev, curr in zip(sample, sample[1:]):
        diff_days = (curr - prev).total_seconds() / 86400
        if diff_days > 0:
            gaps.append(diff_days)

    if not gaps:
        return DAILY

    gaps.sort()
    median_gap = gaps[len(gaps) // 2]

    for upper, factor in _THRESHOLDS:
        if median_gap <= upper:
            return factor
    return ANNUAL


def frequency_label(factor: int) -> str:
    return _LABELS.get(factor, "Daily")
