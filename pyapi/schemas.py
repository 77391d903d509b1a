from __future__ import annotations

"""Pydantic 모델 — 요청/응답 스키마"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

RebalanceLiteral = Literal["daily", "monthly", "quarterly", "annually", "none"]


class SeriesPayload(BaseModel):
    """업로드 시계열 — CSV 행과 같은 형태 ({'Date': ..., 'Equity': ...})"""
    name: str = ""
    rows: list[dict[str, Any]] = Field(default_factory=list)


class StrategyPayload(SeriesPayload):
    id: Optional[str] = None


class SimulateRequest(BaseModel):
    strategies: list[StrategyPayload]
    allocations: Optional[dict[str, float]] = None   # 전략 id(또는 이름) → 비중 %
    strat: Optional[str] = None                      # 공유 링크 형식: "Name1,Name2"
    weights: Optional[str] = None                    # 공유 링크 형식: "50,50"
    initial_balance: float = Field(default=100_000, ge=0)
    rebalance_frequency: RebalanceLiteral = "monthly"
    benchmark: Optional[SeriesPayload] = None
    include_chart: bool = True


class StatsRequest(BaseModel):
    equity_curve: list[float]
    dates: list[str]


class CorrelationRequest(BaseModel):
    series: list[SeriesPayload] = Field(min_length=2)


class ApiError(BaseModel):
    data: None = None
    error: str
