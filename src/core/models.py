from __future__ import annotations

"""
Portfolio Backtester — 데이터 모델

TimeSeries / Strategy / AllocationSet / RebalanceFrequency.

    - TimeSeries: 정규화 날짜(YYYY-MM-DD) → 양수 가격. 로드 후 불변
    - Strategy: 식별자 + 표시용 메타데이터 + TimeSeries 1개
    - AllocationSet: 전략 id → 비중(0~100). 합이 100일 필요 없음, 나머지는 현금

Used by:
    - src.core.data_loader (TimeSeries / Strategy 생성)
    - src.backtest.* (시뮬레이션 입력)
"""
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterator


class RebalanceFrequency(Enum):
    """리밸런싱 주기"""
    DAILY = "daily"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"
    NONE = "none"

    @classmethod
    def parse(cls, value: "RebalanceFrequency | str") -> "RebalanceFrequency":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(f.value for f in cls)
            raise ValueError(f"지원하지 않는 리밸런싱 주기: {value!r} (가능: {choices})")


class TimeSeries(Mapping):
    """
    불변 시계열 — {날짜: 값}.

    삽입 순서가 아니라 날짜 정렬 순서가 시간 순서입니다.
    """

    def __init__(self, data: Mapping[str, float] | None = None):
        self._data: dict[str, float] = {d: float(v) for d, v in (data or {}).items()}
        self._dates: tuple[str, ...] = tuple(sorted(self._data))

    def __getitem__(self, key: str) -> float:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._dates)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        if not self._dates:
            return "TimeSeries(empty)"
        return f"TimeSeries({self._dates[0]} ~ {self._dates[-1]}, n={len(self)})"

    def dates(self) -> tuple[str, ...]:
        """정렬된 날짜 목록"""
        return self._dates

    def first_date(self) -> str | None:
        return self._dates[0] if self._dates else None

    def last_date(self) -> str | None:
        return self._dates[-1] if self._dates else None

    def first_on_or_after(self, date: str) -> float | None:
        """date 이상인 첫 날짜의 값 (없으면 None)"""
        from bisect import bisect_left

        idx = bisect_left(self._dates, date)
        if idx >= len(self._dates):
            return None
        return self._data[self._dates[idx]]


@dataclass
class Strategy:
    """전략 — 식별자, 표시 메타데이터, 에퀴티 시계열"""
    id: str
    name: str
    data: TimeSeries
    color: str = ""
    is_built_in: bool = False
    info_url: str = ""
    metadata: dict = field(default_factory=dict)


class AllocationSet(Mapping):
    """
    전략 id → 비중(%) 스냅샷.

    UI/세션 쪽 가변 dict를 시뮬레이션마다 복사해 고정합니다.
    음수/NaN 비중은 0으로 취급합니다.
    """

    def __init__(self, weights: Mapping[str, float] | None = None):
        clean: dict[str, float] = {}
        for sid, w in (weights or {}).items():
            try:
                w = float(w)
            except (TypeError, ValueError):
                w = 0.0
            clean[sid] = w if w > 0 else 0.0
        self._weights = MappingProxyType(clean)

    @classmethod
    def snapshot(cls, weights: "Mapping[str, float] | AllocationSet | None") -> "AllocationSet":
        if isinstance(weights, AllocationSet):
            return weights
        return cls(weights)

    def __getitem__(self, key: str) -> float:
        return self._weights[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._weights)

    def __len__(self) -> int:
        return len(self._weights)

    def __repr__(self) -> str:
        return f"AllocationSet({dict(self._weights)})"

    def weight(self, strategy_id: str) -> float:
        """비중(%) — 미등록 전략은 0"""
        return self._weights.get(strategy_id, 0.0)

    def fraction(self, strategy_id: str) -> float:
        """비중을 0~1 분수로"""
        return self.weight(strategy_id) / 100

    def is_active(self, strategy_id: str) -> bool:
        return self.weight(strategy_id) > 0

    def active_ids(self) -> list[str]:
        return [sid for sid, w in self._weights.items() if w > 0]

    @property
    def total(self) -> float:
        """배분된 비중 합계(%)"""
        return sum(self._weights.values())
