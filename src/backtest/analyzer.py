from __future__ import annotations

"""
Portfolio Backtester — 성과 분석기

에퀴티 커브 + 날짜 시퀀스를 받아 핵심 성과 지표를 계산합니다.
입력 주기(일/주/월/분기/연)를 자동 감지하여 연율화합니다.

지표: 총 수익률, CAGR, 변동성, 샤프, 소르티노, MDD, 칼마, 연도별/월별 수익률, 연도별 MDD

Depends on:
    - src.backtest.frequency (연율화 계수)

Used by:
    - src.backtest.engine (포트폴리오 / 벤치마크 통계)
    - src.backtest.runner, main.py (콘솔 리포트)

Modification Guide:
    - 새 지표 추가: PortfolioStats에 필드 추가 + compute_stats()에서 계산 + print_report()에 출력 행 추가
    - 무위험 수익률 반영: sharpe 계산식 수정 (현재 rf = 0)
"""
import math
from dataclasses import asdict, dataclass, field
from typing import Sequence

import numpy as np
from loguru import logger

from src.backtest.frequency import detect_annualization_factor, frequency_label

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# 연도당 최소 기간 (짧은 샘플에서 CAGR 폭주 방지)
MIN_YEARS = 0.1


@dataclass
class PortfolioStats:
    """성과 지표 스냅샷 (실행마다 재계산, 식별자 없음)"""
    cagr: float = 0.0
    sharpe: float = 0.0
    sortino: float = 0.0
    max_drawdown: float = 0.0
    calmar: float = 0.0
    total_return: float = 0.0
    final_balance: float = 0.0
    best_year: float = 0.0
    worst_year: float = 0.0
    volatility: float = 0.0
    periods_per_year: int = 252

    annual_returns: dict[int, float] = field(default_factory=dict)
    monthly_returns: dict[int, dict[int, float]] = field(default_factory=dict)  # year → month(0~11) → ret
    annual_max_drawdowns: dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


# ──────────────────────────────────────────────
# 낙폭 유틸리티
# ──────────────────────────────────────────────

def max_drawdown(values: Sequence[float]) -> float:
    """최대 낙폭 (0~1). 고점이 0 이하이면 해당 지점 낙폭은 0"""
    peak = -math.inf
    mdd = 0.0
    for v in values:
        if v > peak:
            peak = v
        dd = (peak - v) / peak if peak > 0 else 0.0
        if dd > mdd:
            mdd = dd
    return mdd


def drawdown_series(values: Sequence[float]) -> list[float]:
    """지점별 낙폭(%) — 차트용, 0 이하 값"""
    peak = -math.inf
    out = []
    for v in values:
        if v > peak:
            peak = v
        out.append((v - peak) / peak * 100 if peak > 0 else 0.0)
    return out


def max_drawdown_in_period(equity_curve: Sequence[float], dates: Sequence[str],
                           start_date: str, end_date: str) -> float | None:
    """[start_date, end_date] 구간 내 MDD. 구간 내 데이터 2개 미만이면 None"""
    subset = [v for v, d in zip(equity_curve, dates) if start_date <= d <= end_date]
    if len(subset) < 2:
        return None
    return max_drawdown(subset)


def stress_test(equity_curve: Sequence[float], dates: Sequence[str],
                periods: Sequence[dict]) -> list[dict]:
    """위기 구간별 MDD 테이블 ({name, start, end, max_drawdown})"""
    rows = []
    for p in periods:
        rows.append({
            "name": p["name"],
            "start": p["start"],
            "end": p["end"],
            "max_drawdown": max_drawdown_in_period(equity_curve, dates, p["start"], p["end"]),
        })
    return rows


# ──────────────────────────────────────────────
# 통계 엔진
# ──────────────────────────────────────────────

def _compound(returns: Sequence[float]) -> float:
    total = 1.0
    for r in returns:
        total *= 1 + r
    return total - 1


def compute_stats(equity_curve: Sequence[float], dates: Sequence[str]) -> PortfolioStats:
    """
    에퀴티 커브 → PortfolioStats.

    Args:
        equity_curve: 가치 시퀀스
        dates: equity_curve와 인덱스가 맞는 YYYY-MM-DD 시퀀스

    Returns:
        PortfolioStats. 길이 2 미만이면 모든 값이 0인 레코드
    """
    if equity_curve is None or dates is None or len(equity_curve) < 2 or len(dates) < 2:
        return PortfolioStats()

    periods_per_year = detect_annualization_factor(dates)

    # ── 기간 수익률 + 월별 그룹 ──
    returns: list[float] = []
    month_groups: dict[tuple[int, int], list[float]] = {}
    year_groups: dict[int, list[float]] = {}
    year_values: dict[int, list[float]] = {}

    for i, (value, date) in enumerate(zip(equity_curve, dates)):
        year = int(date[:4])
        year_values.setdefault(year, []).append(value)
        if i == 0:
            continue

        prev = equity_curve[i - 1]
        r = (value - prev) / prev if prev > 0 else 0.0
        returns.append(r)

        month = int(date[5:7]) - 1
        month_groups.setdefault((year, month), []).append(r)
        year_groups.setdefault(year, []).append(r)

    # ── 월별 / 연도별 기하 수익률 ──
    monthly_returns: dict[int, dict[int, float]] = {}
    for (year, month), rets in month_groups.items():
        monthly_returns.setdefault(year, {})[month] = _compound(rets)

    annual_returns = {year: _compound(rets) for year, rets in year_groups.items()}

    # 연도 내 MDD (연초에 고점 초기화)
    annual_max_drawdowns = {year: max_drawdown(vals) for year, vals in year_values.items()}

    # ── 수익률 지표 ──
    first_value = equity_curve[0]
    last_value = equity_curve[-1]
    n_periods = len(returns)
    years = max(n_periods / periods_per_year, MIN_YEARS)
    cagr = (last_value / first_value) ** (1 / years) - 1 if first_value > 0 else 0.0
    total_return = (last_value - first_value) / first_value if first_value > 0 else 0.0

    mdd = max_drawdown(equity_curve)

    # ── 변동성 (표본 표준편차, N-1) ──
    ret = np.asarray(returns, dtype=float)
    avg_return = float(ret.mean())
    std_dev = float(ret.std(ddof=1)) if n_periods > 1 else 0.0

    # ── 하방 편차: 음수 수익률만, 분모 = 음수 개수 ──
    downside = ret[ret < 0]
    downside_dev = float(np.sqrt(np.mean(downside ** 2))) if len(downside) > 0 else 0.0

    ann = math.sqrt(periods_per_year)
    sharpe = avg_return / std_dev * ann if std_dev > 0 else 0.0
    sortino = avg_return / downside_dev * ann if downside_dev > 0 else 0.0
    calmar = cagr / mdd if mdd > 0 else 0.0

    annual_values = list(annual_returns.values())
    best_year = max(annual_values) if annual_values else 0.0
    worst_year = min(annual_values) if annual_values else 0.0

    logger.debug(f"통계 계산: {dates[0]} ~ {dates[-1]} | "
                 f"주기={frequency_label(periods_per_year)}({periods_per_year}/yr) | "
                 f"기간={n_periods} | 연수={years:.4f}")
    logger.debug(f"평균 수익률={avg_return:.4e} | 표준편차={std_dev:.4e} | "
                 f"샤프={sharpe:.4f} | CAGR={cagr:.2%} | 총수익률={total_return:.2%}")

    return PortfolioStats(
        cagr=cagr,
        sharpe=sharpe,
        sortino=sortino,
        max_drawdown=mdd,
        calmar=calmar,
        total_return=total_return,
        final_balance=last_value,
        best_year=best_year,
        worst_year=worst_year,
        volatility=std_dev * ann,
        periods_per_year=periods_per_year,
        annual_returns=annual_returns,
        monthly_returns=monthly_returns,
        annual_max_drawdowns=annual_max_drawdowns,
    )


# ──────────────────────────────────────────────
# 콘솔 리포트
# ──────────────────────────────────────────────

class PerformanceAnalyzer:
    """
    PortfolioStats 리포트 출력기.

    사용법:
        analyzer = PerformanceAnalyzer(stats, benchmark_stats)
        metrics = analyzer.summary()
        analyzer.print_report()
    """

    def __init__(self, stats: PortfolioStats,
                 benchmark_stats: PortfolioStats | None = None,
                 title: str = "Portfolio",
                 stress_rows: list[dict] | None = None):
        self.stats = stats
        self.benchmark_stats = benchmark_stats
        self.title = title
        self.stress_rows = stress_rows or []

    def summary(self) -> dict:
        """핵심 지표 dict (벤치마크가 있으면 benchmark 키 포함)"""
        s = self.stats
        metrics = {
            "title": self.title,
            "final_balance": s.final_balance,
            "total_return": s.total_return,
            "cagr": s.cagr,
            "volatility": s.volatility,
            "sharpe": s.sharpe,
            "sortino": s.sortino,
            "max_drawdown": s.max_drawdown,
            "calmar": s.calmar,
            "best_year": s.best_year,
            "worst_year": s.worst_year,
            "frequency": frequency_label(s.periods_per_year),
        }
        if self.benchmark_stats is not None:
            b = self.benchmark_stats
            metrics["benchmark"] = {
                "total_return": b.total_return,
                "cagr": b.cagr,
                "sharpe": b.sharpe,
                "sortino": b.sortino,
                "max_drawdown": b.max_drawdown,
                "calmar": b.calmar,
            }
        return metrics

    def print_report(self) -> None:
        """성과 리포트를 콘솔에 출력"""
        s = self.stats
        b = self.benchmark_stats

        def _cmp(value: float, bench_value: float | None, fmt: str) -> str:
            left = format(value, fmt)
            if bench_value is None:
                return left
            return f"{left}   (BM {format(bench_value, fmt)})"

        print()
        print("═" * 60)
        print(f"  📊 포트폴리오 리포트: {self.title}")
        print("═" * 60)
        print(f"  주기:       {frequency_label(s.periods_per_year)}")
        print(f"  최종자산:   ${s.final_balance:>14,.2f}")
        print("─" * 60)

        print("  📈 수익률")
        print(f"    총 수익률:   {_cmp(s.total_return, b.total_return if b else None, '>+10.2%')}")
        print(f"    CAGR:        {_cmp(s.cagr, b.cagr if b else None, '>+10.2%')}")
        print(f"    연 변동성:   {s.volatility:>10.2%}")
        print(f"    최고 연도:   {s.best_year:>+10.2%}")
        print(f"    최저 연도:   {s.worst_year:>+10.2%}")
        print()

        print("  📐 위험 조정 수익률")
        print(f"    샤프:        {_cmp(s.sharpe, b.sharpe if b else None, '>10.2f')}")
        print(f"    소르티노:    {_cmp(s.sortino, b.sortino if b else None, '>10.2f')}")
        print(f"    칼마:        {_cmp(s.calmar, b.calmar if b else None, '>10.2f')}")
        print()

        print("  📉 낙폭")
        print(f"    MDD:         {_cmp(-s.max_drawdown, -b.max_drawdown if b else None, '>+10.2%')}")
        print()

        if self.stress_rows:
            print("  🧪 스트레스 구간 MDD")
            for row in self.stress_rows:
                mdd = row["max_drawdown"]
                value = f"{-mdd:>+8.1%}" if mdd is not None else f"{'—':>8s}"
                print(f"    {row['name']:<24s} {value}")
            print()

        if s.monthly_returns:
            print("  📅 월별 수익률 (%)")
            print("─" * 60)
            self._print_monthly_table(s)

        print("═" * 60)
        print()

    @staticmethod
    def _print_monthly_table(stats: PortfolioStats) -> None:
        """연도 × 월 수익률 + 연간 합계 + 연도 MDD"""
        header = "    연도  " + " ".join(f"{m:>6s}" for m in MONTH_NAMES) + f" {'Total':>7s} {'MDD':>7s}"
        print(header)
        print("    " + "─" * (len(header) - 4))

        for year in sorted(stats.monthly_returns):
            months = stats.monthly_returns[year]
            values = []
            for m in range(12):
                val = months.get(m)
                values.append(f"{'':>6s}" if val is None else f"{val*100:>+5.1f}%")
            total = stats.annual_returns.get(year, 0.0)
            mdd = stats.annual_max_drawdowns.get(year, 0.0)
            print(f"    {year}  " + " ".join(values) + f" {total*100:>+6.1f}% {-mdd*100:>+6.1f}%")
        print()
