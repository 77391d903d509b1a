"""
Portfolio Backtester — 통합 백테스트 실행기

CLI와 API에서 공통으로 사용하는 오케스트레이터.
settings.yaml의 내장 전략/벤치마크를 로드하고, 업로드 CSV를 등록한 뒤 시뮬레이션을 실행합니다.

사용법:
    runner = BacktestRunner()
    runner.load_built_ins()
    runner.upload("my_strategy.csv")
    result = runner.run({"bi-0": 50, "u-1": 50}, 100_000, "monthly")
    runner.report(result)

Depends on:
    - src.core.config (내장 전략, 벤치마크, 스트레스 구간, 기본값)
    - src.core.data_loader (시계열 로드, StrategyRegistry)
    - src.backtest.engine (simulate)
    - src.backtest.analyzer (PerformanceAnalyzer, stress_test)
    - src.backtest.correlation (상관계수 행렬)

Used by:
    - main.py (CLI simulate / correlate 명령)
    - pyapi.routers.simulation
"""
from __future__ import annotations

from pathlib import Path
from typing import Mapping

from loguru import logger

from src.core.config import get_config, resolve_path, DATA_DIR
from src.core.data_loader import StrategyRegistry, load_series
from src.core.models import RebalanceFrequency, Strategy, TimeSeries
from src.backtest.analyzer import PerformanceAnalyzer, stress_test
from src.backtest.correlation import correlation_matrix
from src.backtest.engine import SimulationResult, simulate


class BacktestRunner:
    """통합 백테스트 실행기 — 세션 단위 전략 목록 + 벤치마크 보유"""

    def __init__(self, config: dict | None = None):
        self.config = config if config is not None else get_config()
        self.registry = StrategyRegistry()
        self.benchmark: TimeSeries | None = None
        self.benchmark_name = ""

    # ──────────────────────────────────────────────
    # 데이터 로드
    # ──────────────────────────────────────────────

    def load_built_ins(self) -> list[Strategy]:
        """settings.yaml strategies: 목록 로드. 실패한 전략은 건너뜀"""
        loaded = []
        for item in self.config.get("strategies") or []:
            name = item.get("name", "")
            try:
                series = load_series(resolve_path(item["path"]))
            except (OSError, KeyError, ValueError) as e:
                logger.error(f"내장 전략 로드 실패: {name} — {e}")
                continue
            loaded.append(self.registry.add_built_in(name, series, item.get("info_url", "")))

        logger.info(f"내장 전략 {len(loaded)}개 로드")
        self.load_benchmark()
        return loaded

    def load_benchmark(self, path: str | Path | None = None, name: str | None = None) -> TimeSeries | None:
        """벤치마크 로드 (path 미지정 시 settings.yaml benchmark:)"""
        bm_cfg = self.config.get("benchmark") or {}
        if path is None:
            path = bm_cfg.get("path")
        if not path:
            return None

        try:
            self.benchmark = load_series(resolve_path(path))
        except (OSError, ValueError) as e:
            logger.error(f"벤치마크 로드 실패: {path} — {e}")
            self.benchmark = None
            return None

        self.benchmark_name = name or bm_cfg.get("name") or Path(path).stem
        logger.info(f"벤치마크: {self.benchmark_name} ({len(self.benchmark)}행)")
        return self.benchmark

    def upload(self, path: str | Path) -> Strategy | None:
        """CSV/JSON 업로드 전략 등록 (비중 0%로 시작)"""
        return self.registry.upload_file(path)

    @property
    def strategies(self) -> list[Strategy]:
        return self.registry.strategies

    # ──────────────────────────────────────────────
    # 핵심 API
    # ──────────────────────────────────────────────

    def run(self, allocations: Mapping[str, float],
            initial_balance: float | None = None,
            rebalance_frequency: RebalanceFrequency | str | None = None,
            use_benchmark: bool = True) -> SimulationResult | None:
        """
        시뮬레이션 실행.

        Args:
            allocations: 전략 id → 비중(%)
            initial_balance: None이면 settings.yaml simulation.initial_balance
            rebalance_frequency: None이면 settings.yaml simulation.rebalance_frequency
            use_benchmark: 로드된 벤치마크와 비교할지 여부

        Returns:
            SimulationResult, 데이터 부족 시 None
        """
        sim_cfg = self.config.get("simulation", {})
        if initial_balance is None:
            initial_balance = sim_cfg.get("initial_balance", 100_000)
        if rebalance_frequency is None:
            rebalance_frequency = sim_cfg.get("rebalance_frequency", "monthly")

        result = simulate(
            self.registry.strategies,
            dict(allocations),
            initial_balance,
            rebalance_frequency,
            benchmark=self.benchmark if use_benchmark else None,
            chart_max_points=sim_cfg.get("chart_max_points", 1000),
        )
        if result is None:
            logger.warning("시뮬레이션 결과 없음 (활성 전략 없음 또는 데이터 부족)")
        return result

    def stress_rows(self, result: SimulationResult) -> list[dict]:
        """settings.yaml stress_periods 기준 위기 구간 MDD"""
        periods = self.config.get("stress_periods") or []
        rows = stress_test(result.combined_equity, result.dates, periods)
        if result.benchmark_equity is not None:
            bench_rows = stress_test(result.benchmark_equity, result.dates, periods)
            for row, bench in zip(rows, bench_rows):
                row["benchmark_max_drawdown"] = bench["max_drawdown"]
        return rows

    def correlations(self, strategy_ids: list[str] | None = None) -> tuple[list[Strategy], list[list[float | None]]]:
        """(전략 목록, 상관계수 행렬). strategy_ids 미지정 시 전체"""
        strategies = self.registry.strategies
        if strategy_ids is not None:
            strategies = [s for s in strategies if s.id in strategy_ids]
        return strategies, correlation_matrix(strategies)

    # ──────────────────────────────────────────────
    # 리포트
    # ──────────────────────────────────────────────

    def report(self, result: SimulationResult, csv: bool = False,
               csv_path: str | Path | None = None) -> None:
        """콘솔 리포트 (+ 선택적 CSV 내보내기)"""
        names = ", ".join(s.name for s in result.active_strategies)
        analyzer = PerformanceAnalyzer(
            result.stats, result.benchmark_stats,
            title=f"{names} ({result.rebalance_frequency.value})",
            stress_rows=self.stress_rows(result),
        )
        analyzer.print_report()

        if csv:
            self.export_csv(result, csv_path)

    @staticmethod
    def export_csv(result: SimulationResult, path: str | Path | None = None) -> Path:
        """에퀴티 커브 CSV 저장 (기본: data/portfolio_equity.csv)"""
        if path is None:
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            path = DATA_DIR / "portfolio_equity.csv"
        path = Path(path)
        result.to_frame().to_csv(path)
        logger.info(f"📁 CSV 저장: {path}")
        return path
