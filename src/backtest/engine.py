from __future__ import annotations

"""
Portfolio Backtester — 리밸런싱 시뮬레이터

전략별 에퀴티 커브를 목표 비중으로 합성해 일별 포트폴리오 에퀴티 커브를 재구성합니다.
일별 루프: 가격 조회(결측 시 직전가 유지) → 잔고 드리프트 → TWR 갱신 → 리밸런싱 판단 → 기록

Depends on:
    - src.backtest.timeline (마스터 타임라인)
    - src.backtest.analyzer (compute_stats, drawdown_series)
    - src.core.models (Strategy, AllocationSet, RebalanceFrequency, TimeSeries)

Used by:
    - src.backtest.runner, main.py, pyapi.routers.simulation

Modification Guide:
    - 새 리밸런싱 주기: RebalanceFrequency에 값 추가 + _should_rebalance() 분기 추가
    - 적립/인출(외부 현금흐름) 추가 시: TWR 수익률 계산에서 흐름 금액을 제외하도록 수정 필요
      (현재는 외부 흐름이 없으므로 리밸런싱일 재배분과 유기적 수익이 섞여도 결과가 맞음)

NOTE:
    결측 가격은 직전 가격으로 채웁니다(수익률 0%). 휴장일과 데이터 누락을 구분하지 않습니다.
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import Mapping, Sequence

import pandas as pd
from loguru import logger

from src.backtest.analyzer import PortfolioStats, compute_stats, drawdown_series
from src.backtest.timeline import TimelinePoint, active_strategies, build_master_timeline
from src.core.models import AllocationSet, RebalanceFrequency, Strategy, TimeSeries

TWR_BASE = 100.0


# ──────────────────────────────────────────────
# 데이터 클래스
# ──────────────────────────────────────────────

@dataclass
class SimulationState:
    """1회 시뮬레이션 동안만 존재하는 가변 상태"""
    balances: list[float]          # 전략별 포트폴리오 내 달러 잔고
    cash: float
    last_prices: list[float]       # 전략별 마지막 가격
    current_month: int
    current_year: int


@dataclass
class SimulationResult:
    """시뮬레이션 결과 (생성 후 변경하지 않음)"""
    dates: list[str]
    combined_equity: list[float]
    twr_equity: list[float]
    strategy_equities: dict[str, list[float]]     # 전략 id → 독립 에퀴티 (리밸런싱 무관)
    stats: PortfolioStats
    initial_balance: float
    rebalance_frequency: RebalanceFrequency
    active_strategies: list[Strategy] = field(default_factory=list)

    benchmark_equity: list[float] | None = None
    benchmark_stats: PortfolioStats | None = None

    # 차트/검증용 파생 데이터
    combined_drawdown: list[float] = field(default_factory=list)
    benchmark_drawdown: list[float] = field(default_factory=list)
    balance_history: list[list[float]] = field(default_factory=list)   # 일자별 (리밸런싱 후) 전략 잔고
    cash_history: list[float] = field(default_factory=list)
    rebalance_count: int = 0
    chart_data: list[dict] = field(default_factory=list)

    @property
    def final_balance(self) -> float:
        return self.combined_equity[-1] if self.combined_equity else 0.0

    def to_frame(self) -> pd.DataFrame:
        """날짜 인덱스 DataFrame (combined, twr, 전략별, benchmark)

        전략 컬럼은 이름 기준. 같은 이름이 여럿이면 "이름 [id]"로 구분합니다.
        """
        df = pd.DataFrame(
            {"combined": self.combined_equity, "twr": self.twr_equity},
            index=pd.to_datetime(self.dates),
        )
        name_counts = Counter(s.name for s in self.active_strategies)
        for s in self.active_strategies:
            column = s.name if name_counts[s.name] == 1 else f"{s.name} [{s.id}]"
            df[column] = self.strategy_equities[s.id]
        if self.benchmark_equity is not None:
            df["benchmark"] = self.benchmark_equity
        df.index.name = "date"
        return df


# ──────────────────────────────────────────────
# 시뮬레이터
# ──────────────────────────────────────────────

class PortfolioSimulator:
    """
    일별 리밸런싱 상태 머신.

    사용법:
        sim = PortfolioSimulator(strategies, {"bi-0": 60, "bi-1": 40},
                                 initial_balance=100_000, rebalance_frequency="monthly")
        result = sim.run()   # 활성 전략 없음 / 타임라인 2일 미만이면 None
    """

    def __init__(self, strategies: Sequence[Strategy],
                 allocations: Mapping[str, float],
                 initial_balance: float = 100_000,
                 rebalance_frequency: RebalanceFrequency | str = RebalanceFrequency.MONTHLY,
                 benchmark: TimeSeries | Mapping[str, float] | None = None,
                 chart_max_points: int = 1000):
        """
        Args:
            strategies: 전체 전략 목록 (비중 0인 전략은 무시)
            allocations: 전략 id → 비중(%). 실행 시점에 스냅샷으로 고정
            initial_balance: 초기 자본 (≥ 0)
            rebalance_frequency: daily / monthly / quarterly / annually / none
            benchmark: 비교용 벤치마크 시계열 (선택)
            chart_max_points: 차트용 다운샘플 최대 포인트 수
        """
        self.strategies = list(strategies)
        self.allocations = AllocationSet.snapshot(allocations)
        self.initial_balance = max(float(initial_balance or 0), 0.0)
        self.rebalance_frequency = RebalanceFrequency.parse(rebalance_frequency)
        if benchmark is not None and not isinstance(benchmark, TimeSeries):
            benchmark = TimeSeries(benchmark)
        self.benchmark = benchmark
        self.chart_max_points = max(int(chart_max_points), 1)

    def run(self) -> SimulationResult | None:
        """시뮬레이션 실행"""
        timeline = build_master_timeline(self.strategies, self.allocations)
        active = active_strategies(self.strategies, self.allocations)

        if not active:
            logger.debug("활성 전략 없음 — 시뮬레이션 생략")
            return None
        if len(timeline) < 2:
            logger.warning(f"타임라인 부족 ({len(timeline)}일) — 시뮬레이션 생략")
            return None

        weights = [self.allocations.fraction(s.id) for s in active]
        total_weight = sum(weights)
        start = self.initial_balance
        day0 = timeline[0].date

        logger.info(f"💻 시뮬레이션: 전략 {len(active)}개, 비중 합계 {total_weight:.0%}, "
                    f"자본 ${start:,.0f}, 리밸런싱={self.rebalance_frequency.value}, "
                    f"기간 {day0} ~ {timeline[-1].date} ({len(timeline)}일)")

        # ── 초기화 (day 0) ──
        state = SimulationState(
            balances=[start * w for w in weights],
            cash=start * (1 - total_weight),
            last_prices=[self._initial_price(s.data, day0) for s in active],
            current_month=timeline[0].month,
            current_year=timeline[0].year,
        )

        combined = [start]
        twr = [TWR_BASE]
        independent = [[b] for b in state.balances]
        balance_history = [list(state.balances)]
        cash_history = [state.cash]
        rebalance_count = 0

        bench_curve, bench_last, bench_factor = self._init_benchmark(day0, start)

        # ── 일별 루프 ──
        for point in timeline[1:]:
            prev_total = combined[-1]
            day_returns = self._apply_returns(point.date, active, state)

            for j, r in enumerate(day_returns):
                independent[j].append(max(independent[j][-1] * (1 + r), 0.0))

            pre_flow_total = sum(state.balances) + state.cash

            portfolio_ret = (pre_flow_total - prev_total) / prev_total if prev_total > 0 else 0.0
            twr.append(twr[-1] * (1 + portfolio_ret))

            if self._should_rebalance(point, state):
                state.balances = [pre_flow_total * w for w in weights]
                state.cash = pre_flow_total * (1 - total_weight)
                rebalance_count += 1

            state.current_month = point.month
            state.current_year = point.year

            combined.append(pre_flow_total)
            balance_history.append(list(state.balances))
            cash_history.append(state.cash)

            if bench_curve is not None:
                price = self.benchmark.get(point.date)
                if price is not None:
                    bench_last = price
                bench_curve.append(bench_last * bench_factor)

        return self._build_result(
            timeline, active, combined, twr, independent,
            bench_curve, balance_history, cash_history, rebalance_count,
        )

    # ──────────────────────────────────────
    # 핵심 시뮬레이션 로직
    # ──────────────────────────────────────

    @staticmethod
    def _initial_price(series: TimeSeries, day0: str) -> float:
        """day 0 가격, 없으면 이후 첫 가격, 그것도 없으면 1.0"""
        price = series.get(day0)
        if price is None:
            price = series.first_on_or_after(day0)
        return price if price is not None else 1.0

    @staticmethod
    def _apply_returns(date: str, active: list[Strategy],
                       state: SimulationState) -> list[float]:
        """전략별 일간 수익률 적용 (잔고 드리프트). 적용한 수익률 목록 반환"""
        returns = []
        for j, s in enumerate(active):
            last = state.last_prices[j]
            price = s.data.get(date, last)
            r = (price - last) / last if last > 0 else 0.0
            state.last_prices[j] = price
            # -100% 이하 수익률에서도 잔고는 음수가 되지 않음
            state.balances[j] = max(state.balances[j] * (1 + r), 0.0)
            returns.append(r)
        return returns

    def _should_rebalance(self, point: TimelinePoint, state: SimulationState) -> bool:
        """오늘 리밸런싱 여부 (state의 월/연도는 아직 전일 값)"""
        freq = self.rebalance_frequency
        month_changed = point.month != state.current_month

        if freq is RebalanceFrequency.DAILY:
            return True
        if freq is RebalanceFrequency.MONTHLY:
            return month_changed
        if freq is RebalanceFrequency.QUARTERLY:
            return month_changed and point.month % 3 == 0
        if freq is RebalanceFrequency.ANNUALLY:
            return point.year != state.current_year
        return False

    def _init_benchmark(self, day0: str, start: float) -> tuple[list[float] | None, float, float]:
        """(벤치마크 커브, 마지막 가격, 스케일 계수). 시작 가격이 없으면 커브 None"""
        if self.benchmark is None:
            return None, 0.0, 0.0

        start_price = self.benchmark.get(day0)
        if start_price is None:
            start_price = self.benchmark.first_on_or_after(day0)
        if not start_price or start_price <= 0:
            logger.warning(f"벤치마크 시작 가격 없음 ({day0}) — 벤치마크 비교 생략")
            return None, 0.0, 0.0

        return [start], start_price, start / start_price

    # ──────────────────────────────────────
    # 결과 생성
    # ──────────────────────────────────────

    def _build_result(self, timeline: list[TimelinePoint], active: list[Strategy],
                      combined: list[float], twr: list[float],
                      independent: list[list[float]],
                      bench_curve: list[float] | None,
                      balance_history: list[list[float]],
                      cash_history: list[float],
                      rebalance_count: int) -> SimulationResult:
        dates = [p.date for p in timeline]
        start = self.initial_balance

        # 통계는 TWR 지수 기준 (리밸런싱 흐름과 무관한 실현 수익률)
        stats = compute_stats(twr, dates)
        stats.final_balance = combined[-1]
        stats.total_return = (stats.final_balance - start) / start if start > 0 else 0.0

        bench_stats = compute_stats(bench_curve, dates) if bench_curve is not None else None

        combined_dd = drawdown_series(combined)
        bench_dd = drawdown_series(bench_curve) if bench_curve is not None else [0.0] * len(combined)

        strategy_equities = {s.id: independent[j] for j, s in enumerate(active)}

        result = SimulationResult(
            dates=dates,
            combined_equity=combined,
            twr_equity=twr,
            strategy_equities=strategy_equities,
            stats=stats,
            initial_balance=start,
            rebalance_frequency=self.rebalance_frequency,
            active_strategies=active,
            benchmark_equity=bench_curve,
            benchmark_stats=bench_stats,
            combined_drawdown=combined_dd,
            benchmark_drawdown=bench_dd,
            balance_history=balance_history,
            cash_history=cash_history,
            rebalance_count=rebalance_count,
        )
        result.chart_data = build_chart_data(result, timeline, self.chart_max_points)

        logger.info(f"✅ 시뮬레이션 완료: 최종 자산=${result.final_balance:,.2f}, "
                    f"CAGR={stats.cagr:+.2%}, MDD={-stats.max_drawdown:.2%}, "
                    f"리밸런싱 {rebalance_count}회")
        return result


def build_chart_data(result: SimulationResult, timeline: list[TimelinePoint],
                     max_points: int = 1000) -> list[dict]:
    """차트 표시용 다운샘플 (최대 ~max_points개, 마지막 지점 항상 포함)"""
    n = len(timeline)
    step = max(1, n // max_points)

    indices = list(range(0, n, step))
    if (n - 1) % step != 0:
        indices.append(n - 1)

    bench = result.benchmark_equity
    points = []
    for i in indices:
        pt = {
            "date": timeline[i].date,
            "timestamp": timeline[i].timestamp,
            "combined": result.combined_equity[i],
            "benchmark": bench[i] if bench is not None else 0.0,
            "combined_dd": result.combined_drawdown[i],
            "benchmark_dd": result.benchmark_drawdown[i],
        }
        for sid, curve in result.strategy_equities.items():
            pt[sid] = curve[i]
        points.append(pt)
    return points


def simulate(strategies: Sequence[Strategy],
             allocations: Mapping[str, float],
             initial_balance: float,
             rebalance_frequency: RebalanceFrequency | str,
             benchmark: TimeSeries | Mapping[str, float] | None = None,
             chart_max_points: int = 1000) -> SimulationResult | None:
    """PortfolioSimulator(...).run() 단축 함수"""
    return PortfolioSimulator(
        strategies, allocations,
        initial_balance=initial_balance,
        rebalance_frequency=rebalance_frequency,
        benchmark=benchmark,
        chart_max_points=chart_max_points,
    ).run()
