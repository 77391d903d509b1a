"""
Portfolio Backtester — Backtest 패키지

전략 에퀴티 커브 합성 시뮬레이션 및 성과 분석.

공개 API:
    - simulate / PortfolioSimulator: 리밸런싱 시뮬레이터
    - SimulationResult: 시뮬레이션 결과 컨테이너
    - compute_stats / PortfolioStats / PerformanceAnalyzer: 성과 지표 계산 + 리포트
    - correlate / correlation_matrix: 수익률 상관계수
    - build_master_timeline: 활성 전략 날짜 축
    - detect_annualization_factor: 데이터 주기 감지
    - LatestWinsExecutor: 최신 요청 우선 재계산기
"""
from src.backtest.frequency import detect_annualization_factor
from src.backtest.analyzer import (
    PortfolioStats, PerformanceAnalyzer, compute_stats,
    max_drawdown, max_drawdown_in_period, drawdown_series, stress_test,
)
from src.backtest.correlation import correlate, correlation_matrix
from src.backtest.timeline import TimelinePoint, build_master_timeline
from src.backtest.engine import PortfolioSimulator, SimulationResult, simulate
from src.backtest.deferred import LatestWinsExecutor

__all__ = [
    "detect_annualization_factor",
    "PortfolioStats",
    "PerformanceAnalyzer",
    "compute_stats",
    "max_drawdown",
    "max_drawdown_in_period",
    "drawdown_series",
    "stress_test",
    "correlate",
    "correlation_matrix",
    "TimelinePoint",
    "build_master_timeline",
    "PortfolioSimulator",
    "SimulationResult",
    "simulate",
    "LatestWinsExecutor",
]
