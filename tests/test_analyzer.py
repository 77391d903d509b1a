from __future__ import annotations

"""성과 지표 / 낙폭 / 상관계수 테스트"""

import math

import pytest

from src.backtest.analyzer import (
    PerformanceAnalyzer, PortfolioStats, compute_stats, drawdown_series,
    max_drawdown, max_drawdown_in_period, stress_test,
)
from src.backtest.correlation import correlate, correlation_matrix
from src.core.models import TimeSeries

from conftest import business_days, make_strategy

MONTH_STARTS = [f"2020-{m:02d}-01" for m in range(1, 13)] + ["2021-01-01"]


class TestMaxDrawdown:
    def test_non_decreasing_is_zero(self):
        assert max_drawdown([100, 100, 101, 150, 150]) == 0.0

    def test_peak_to_trough(self):
        """고점 200 → 저점 50 = 75%"""
        assert max_drawdown([100, 200, 120, 50, 180]) == pytest.approx(0.75)

    def test_bounded(self):
        mdd = max_drawdown([100, 0, 0, 10])
        assert 0.0 <= mdd <= 1.0
        assert mdd == pytest.approx(1.0)

    def test_drawdown_series_non_positive(self):
        dd = drawdown_series([100, 110, 99, 121])
        assert dd[0] == 0.0
        assert dd[2] == pytest.approx(-10.0)
        assert dd[3] == 0.0
        assert all(v <= 0 for v in dd)

    def test_period_mdd(self):
        dates = ["2020-01-01", "2020-02-01", "2020-03-01", "2020-04-01"]
        curve = [100, 80, 120, 60]
        assert max_drawdown_in_period(curve, dates, "2020-01-01", "2020-02-15") == pytest.approx(0.2)
        assert max_drawdown_in_period(curve, dates, "2020-03-01", "2020-04-01") == pytest.approx(0.5)

    def test_period_mdd_insufficient_points(self):
        """구간 내 데이터 1개 이하 → None"""
        dates = ["2020-01-01", "2020-02-01"]
        assert max_drawdown_in_period([100, 90], dates, "2021-01-01", "2021-12-31") is None
        assert max_drawdown_in_period([100, 90], dates, "2020-01-01", "2020-01-31") is None

    def test_stress_rows(self):
        dates = ["2020-02-20", "2020-03-10", "2020-03-23", "2020-04-30"]
        periods = [
            {"name": "COVID-19 Crash", "start": "2020-02-19", "end": "2020-03-23"},
            {"name": "2022 Bear Market", "start": "2022-01-03", "end": "2022-10-12"},
        ]
        rows = stress_test([100, 80, 66, 90], dates, periods)
        assert rows[0]["name"] == "COVID-19 Crash"
        assert rows[0]["max_drawdown"] == pytest.approx(0.34)
        assert rows[1]["max_drawdown"] is None


class TestComputeStats:
    @pytest.mark.parametrize("curve,dates", [([], []), ([100.0], ["2020-01-01"]), (None, None)])
    def test_short_input_is_zero_record(self, curve, dates):
        stats = compute_stats(curve, dates)
        assert stats == PortfolioStats()
        assert stats.cagr == 0.0
        assert stats.annual_returns == {}

    def test_monthly_doubling_cagr(self):
        """월간 13포인트, 1년간 2배 → CAGR 100%"""
        curve = [100 * 2 ** (i / 12) for i in range(13)]
        stats = compute_stats(curve, MONTH_STARTS)
        assert stats.periods_per_year == 12
        assert stats.cagr == pytest.approx(1.0)
        assert stats.total_return == pytest.approx(1.0)
        assert stats.final_balance == pytest.approx(200.0)
        assert stats.max_drawdown == 0.0
        assert stats.calmar == 0.0

    def test_flat_curve_has_zero_ratios(self):
        """표준편차/하방편차 0 → 샤프/소르티노 0"""
        stats = compute_stats([100.0] * 13, MONTH_STARTS)
        assert stats.volatility == 0.0
        assert stats.sharpe == 0.0
        assert stats.sortino == 0.0
        assert stats.cagr == 0.0

    def test_sharpe_uses_sample_std(self):
        """rf = 0, ddof = 1, 연율화 sqrt(12)"""
        curve = [100, 110, 99, 108.9, 98.01]
        dates = MONTH_STARTS[:5]
        returns = [0.1, -0.1, 0.1, -0.1]
        mean = sum(returns) / 4
        std = math.sqrt(sum((r - mean) ** 2 for r in returns) / 3)
        stats = compute_stats(curve, dates)
        assert stats.sharpe == pytest.approx(mean / std * math.sqrt(12))

    def test_sortino_downside_denominator(self):
        """하방 편차 분모 = 음수 수익률 개수"""
        curve = [100, 110, 99, 108.9, 98.01]
        stats = compute_stats(curve, MONTH_STARTS[:5])
        mean = 0.0
        downside = math.sqrt((0.1 ** 2 + 0.1 ** 2) / 2)
        assert stats.sortino == pytest.approx(mean / downside * math.sqrt(12), abs=1e-9)

    def test_calmar(self):
        curve = [100, 150, 120, 200]
        dates = MONTH_STARTS[:4]
        stats = compute_stats(curve, dates)
        assert stats.max_drawdown == pytest.approx(0.2)
        assert stats.calmar == pytest.approx(stats.cagr / 0.2)

    def test_short_sample_year_floor(self):
        """기간이 짧아도 연수는 최소 0.1"""
        dates = business_days("2020-01-02", 3)
        stats = compute_stats([100, 101, 102], dates)
        assert stats.cagr == pytest.approx(1.02 ** (1 / 0.1) - 1)

    def test_annual_and_monthly_returns(self):
        dates = ["2020-11-30", "2020-12-15", "2020-12-31", "2021-01-15", "2021-01-29"]
        curve = [100, 110, 121, 108.9, 119.79]
        stats = compute_stats(curve, dates)

        assert stats.monthly_returns[2020][11] == pytest.approx(0.21)
        assert 10 not in stats.monthly_returns[2020]
        assert stats.monthly_returns[2021][0] == pytest.approx(-0.01)
        assert stats.annual_returns[2020] == pytest.approx(0.21)
        assert stats.annual_returns[2021] == pytest.approx(-0.01)
        assert stats.best_year == pytest.approx(0.21)
        assert stats.worst_year == pytest.approx(-0.01)

    def test_annual_max_drawdown_resets_each_year(self):
        dates = ["2020-06-01", "2020-09-01", "2020-12-01", "2021-03-01", "2021-06-01"]
        curve = [100, 200, 150, 120, 130]
        stats = compute_stats(curve, dates)
        assert stats.annual_max_drawdowns[2020] == pytest.approx(0.25)
        # 2021: 고점 120부터 새로 계산
        assert stats.annual_max_drawdowns[2021] == 0.0
        assert stats.max_drawdown == pytest.approx(0.4)

    def test_zero_start_value(self):
        stats = compute_stats([0.0, 10.0, 20.0], MONTH_STARTS[:3])
        assert stats.total_return == 0.0
        assert stats.cagr == 0.0

    def test_to_dict(self):
        stats = compute_stats([100, 110, 121], MONTH_STARTS[:3])
        data = stats.to_dict()
        assert data["final_balance"] == pytest.approx(121)
        assert "monthly_returns" in data


class TestPerformanceAnalyzer:
    def test_summary_with_benchmark(self):
        stats = compute_stats([100, 110, 121], MONTH_STARTS[:3])
        bench = compute_stats([100, 105, 110], MONTH_STARTS[:3])
        summary = PerformanceAnalyzer(stats, bench, title="Test").summary()
        assert summary["title"] == "Test"
        assert summary["frequency"] == "Monthly"
        assert summary["benchmark"]["total_return"] == pytest.approx(0.10)

    def test_print_report(self, capsys):
        stats = compute_stats([100 * 2 ** (i / 12) for i in range(13)], MONTH_STARTS)
        rows = [{"name": "Dot-com Crash", "start": "2000-03-24", "end": "2002-10-09", "max_drawdown": None}]
        PerformanceAnalyzer(stats, title="Doubling", stress_rows=rows).print_report()
        out = capsys.readouterr().out
        assert "Doubling" in out
        assert "Dot-com Crash" in out
        assert "2020" in out


class TestCorrelation:
    def test_self_correlation_is_one(self):
        s = TimeSeries({"2020-01-01": 100, "2020-01-02": 103, "2020-01-03": 101, "2020-01-06": 106})
        assert correlate(s, s) == pytest.approx(1.0)

    def test_symmetric(self, two_year_strategies):
        a, b = two_year_strategies
        assert correlate(a.data, b.data) == pytest.approx(correlate(b.data, a.data))

    def test_perfect_inverse(self):
        a = TimeSeries({"2020-01-01": 100, "2020-01-02": 110, "2020-01-03": 99, "2020-01-06": 108.9})
        b = TimeSeries({"2020-01-01": 100, "2020-01-02": 90, "2020-01-03": 99, "2020-01-06": 89.1})
        assert correlate(a, b) == pytest.approx(-1.0)

    def test_uses_only_overlapping_dates(self):
        a = TimeSeries({"2020-01-01": 100, "2020-01-02": 110, "2020-01-03": 99, "2020-01-06": 108.9})
        b = TimeSeries({"2020-01-02": 50, "2020-01-03": 45, "2020-01-06": 49.5, "2020-01-07": 1})
        assert correlate(a, b) == pytest.approx(1.0)

    def test_fewer_than_two_pairs_is_none(self):
        a = TimeSeries({"2020-01-01": 100, "2020-01-02": 110})
        b = TimeSeries({"2020-01-01": 50, "2020-01-02": 55})
        assert correlate(a, b) is None
        assert correlate(a, TimeSeries({"2021-01-01": 1})) is None

    def test_zero_variance_is_zero(self):
        a = TimeSeries({"2020-01-01": 100, "2020-01-02": 110, "2020-01-03": 99})
        flat = TimeSeries({"2020-01-01": 100, "2020-01-02": 100, "2020-01-03": 100})
        assert correlate(a, flat) == 0.0

    def test_matrix(self, two_year_strategies):
        a, b = two_year_strategies
        c = make_strategy("C", ["2030-01-01"], [1.0])
        matrix = correlation_matrix([a, b, c])
        assert matrix[0][0] == 1.0
        assert matrix[2][2] == 1.0
        assert matrix[0][1] == matrix[1][0]
        assert -1.0 <= matrix[0][1] <= 1.0
        assert matrix[0][2] is None
