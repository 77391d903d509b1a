from __future__ import annotations

"""
Portfolio Backtester — 마스터 타임라인 빌더

비중 > 0인 전략들의 날짜 합집합을 정렬해 시뮬레이션 날짜 축을 만듭니다.

규칙:
    - 비활성(비중 0) 전략의 날짜는 포함하지 않음 (데이터 없는 "평평한" 날 방지)
    - 시작일 = 활성 전략들의 첫 날짜 중 가장 늦은 날짜 (모든 전략에 데이터가 있는 시점부터)
    - 벤치마크 날짜는 합집합에 넣지 않음 (비거래일 노이즈 방지)

Used by:
    - src.backtest.engine (simulate)
"""
from dataclasses import dataclass
from datetime import timezone
from typing import Mapping, Sequence

from src.core.dates import to_datetime
from src.core.models import AllocationSet, Strategy


@dataclass(frozen=True)
class TimelinePoint:
    """타임라인 한 지점 (month는 0~11)"""
    date: str
    timestamp: float
    month: int
    year: int


def _point(date: str) -> TimelinePoint:
    dt = to_datetime(date)
    return TimelinePoint(
        date=date,
        timestamp=dt.replace(tzinfo=timezone.utc).timestamp() * 1000,
        month=dt.month - 1,
        year=dt.year,
    )


def active_strategies(strategies: Sequence[Strategy],
                      allocations: Mapping[str, float]) -> list[Strategy]:
    """비중 > 0 전략만 (입력 순서 유지)"""
    allocations = AllocationSet.snapshot(allocations)
    return [s for s in strategies if allocations.is_active(s.id)]


def build_master_timeline(strategies: Sequence[Strategy],
                          allocations: Mapping[str, float]) -> list[TimelinePoint]:
    """
    활성 전략 날짜 합집합 → 정렬된 TimelinePoint 목록.

    활성 전략이 없으면 빈 리스트.
    """
    active = active_strategies(strategies, allocations)

    anchor_date = ""
    all_dates: set[str] = set()
    for s in active:
        first = s.data.first_date()
        if first is None:
            continue
        if first > anchor_date:
            anchor_date = first
        all_dates.update(s.data.keys())

    return [_point(d) for d in sorted(all_dates) if d >= anchor_date]
