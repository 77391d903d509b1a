from __future__ import annotations

"""BacktestRunner / 설정 로더 / CLI 통합 테스트"""

import json
import sys
from copy import deepcopy

import pandas as pd
import pytest

from src.backtest.runner import BacktestRunner
from src.core.config import DEFAULT_CONFIG, load_config

from conftest import business_days

DATES = business_days("2020-01-01", 80)


def _write_json(path, values):
    path.write_text(json.dumps([{"Date": d, "Equity": v} for d, v in zip(DATES, values)]), encoding="utf-8")
    return path


def _write_csv(path, values, value_col="Equity"):
    lines = [f"Date,{value_col}"] + [f"{d},{v}" for d, v in zip(DATES, values)]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def data_files(tmp_path):
    trend = _write_json(tmp_path / "trend.json", [100 + i for i in range(len(DATES))])
    swing = _write_json(tmp_path / "swing.json", [100 + (3 if i % 2 else -3) for i in range(len(DATES))])
    # COVID 구간(2020-02-19 ~ 03-23)에 하락하는 벤치마크
    bench_values = [300 - max(0, i - 35) * 2 if i < 60 else 260 for i in range(len(DATES))]
    spy = _write_json(tmp_path / "spy.json", bench_values)
    return {"trend": trend, "swing": swing, "spy": spy, "dir": tmp_path}


@pytest.fixture
def runner_config(data_files):
    config = deepcopy(DEFAULT_CONFIG)
    config["strategies"] = [
        {"name": "Trend", "path": str(data_files["trend"])},
        {"name": "Swing", "path": str(data_files["swing"])},
        {"name": "Missing", "path": str(data_files["dir"] / "nope.json")},
    ]
    config["benchmark"] = {"name": "S&P 500", "path": str(data_files["spy"])}
    return config


class TestConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "none.yaml")
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_partial_override(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("simulation:\n  rebalance_frequency: quarterly\n", encoding="utf-8")
        config = load_config(path)
        assert config["simulation"]["rebalance_frequency"] == "quarterly"
        assert config["simulation"]["initial_balance"] == 100_000
        assert len(config["stress_periods"]) == 5

    def test_env_override(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("simulation:\n  initial_balance: 5000\n", encoding="utf-8")
        monkeypatch.setenv("PORTFOLIO_SETTINGS", str(path))
        assert load_config()["simulation"]["initial_balance"] == 5000


class TestBacktestRunner:
    def test_load_built_ins_skips_failures(self, runner_config):
        runner = BacktestRunner(runner_config)
        loaded = runner.load_built_ins()
        assert [s.name for s in loaded] == ["Trend", "Swing"]
        assert [s.id for s in loaded] == ["bi-0", "bi-1"]
        assert runner.benchmark_name == "S&P 500"
        assert len(runner.benchmark) == len(DATES)

    def test_run_uses_config_defaults(self, runner_config):
        runner_config["simulation"]["rebalance_frequency"] = "none"
        runner = BacktestRunner(runner_config)
        runner.load_built_ins()
        result = runner.run({"bi-0": 50, "bi-1": 50})
        assert result.rebalance_frequency.value == "none"
        assert result.initial_balance == 100_000
        assert result.benchmark_equity is not None

    def test_run_without_benchmark(self, runner_config):
        runner = BacktestRunner(runner_config)
        runner.load_built_ins()
        result = runner.run({"bi-0": 100}, 10_000, "daily", use_benchmark=False)
        assert result.benchmark_equity is None
        assert result.final_balance == pytest.approx(10_000 * (100 + len(DATES) - 1) / 100)

    def test_run_nothing_allocated(self, runner_config):
        runner = BacktestRunner(runner_config)
        runner.load_built_ins()
        assert runner.run({}) is None

    def test_stress_rows(self, runner_config):
        runner = BacktestRunner(runner_config)
        runner.load_built_ins()
        result = runner.run({"bi-0": 100})
        rows = {r["name"]: r for r in runner.stress_rows(result)}
        covid = rows["COVID-19 Crash"]
        assert covid["max_drawdown"] == 0.0
        assert covid["benchmark_max_drawdown"] > 0
        assert rows["2008 Financial Crisis"]["max_drawdown"] is None

    def test_upload_and_correlations(self, runner_config, data_files):
        runner = BacktestRunner(runner_config)
        csv = _write_csv(data_files["dir"] / "mine.csv", [50 + i for i in range(len(DATES))], value_col="NAV")
        strategy = runner.upload(csv)
        assert strategy.id == "u-1"
        assert runner.registry.allocations == {"u-1": 0.0}

        runner.load_built_ins()
        strategies, matrix = runner.correlations(["u-1", "bi-0"])
        assert {s.id for s in strategies} == {"u-1", "bi-0"}
        assert matrix[0][1] > 0.9

    def test_report_and_export(self, runner_config, data_files, capsys):
        runner = BacktestRunner(runner_config)
        runner.load_built_ins()
        result = runner.run({"bi-0": 60, "bi-1": 40}, 100_000, "monthly")
        out_path = data_files["dir"] / "equity.csv"
        runner.report(result, csv=True, csv_path=out_path)

        out = capsys.readouterr().out
        assert "Trend, Swing (monthly)" in out
        assert "COVID-19 Crash" in out

        df = pd.read_csv(out_path, index_col="date")
        assert list(df.columns) == ["combined", "twr", "Trend", "Swing", "benchmark"]
        assert len(df) == len(DATES)


class TestLogger:
    def test_file_sink(self, tmp_path, monkeypatch):
        from loguru import logger
        from src.utils import logger as logger_module

        monkeypatch.setattr(logger_module, "LOGS_DIR", tmp_path / "logs")
        try:
            logger_module.setup_logger(level="DEBUG")
            logger.info("파일 로그 확인")
            log_file = tmp_path / "logs" / "portfolio_backtester.log"
            assert log_file.exists()
            assert "파일 로그 확인" in log_file.read_text(encoding="utf-8")
        finally:
            logger.remove()
            logger.add(sys.stderr)


@pytest.fixture
def cli(monkeypatch):
    """main 모듈 (로거 설정은 건너뜀)"""
    import main

    monkeypatch.setattr(main, "setup_logger", lambda level=None: None)
    return main


class TestCli:
    def test_simulate_equal_weights(self, cli, data_files, monkeypatch, capsys):
        a = _write_csv(data_files["dir"] / "alpha.csv", [100 + i for i in range(len(DATES))])
        b = _write_csv(data_files["dir"] / "beta.csv", [200 - i for i in range(len(DATES))])
        monkeypatch.setattr(sys, "argv", ["main.py", "simulate", str(a), str(b), "--no-benchmark"])
        assert cli.main() == 0
        assert "alpha, beta (monthly)" in capsys.readouterr().out

    def test_simulate_csv_export(self, cli, data_files, monkeypatch):
        a = _write_csv(data_files["dir"] / "alpha.csv", [100 + i for i in range(len(DATES))])
        out_path = data_files["dir"] / "out.csv"
        monkeypatch.setattr(sys, "argv", [
            "main.py", "simulate", str(a), "--weights", "80", "--rebalance", "quarterly",
            "--capital", "5000", "--csv", "--csv-path", str(out_path),
        ])
        assert cli.main() == 0
        df = pd.read_csv(out_path, index_col="date")
        assert df["combined"].iloc[0] == pytest.approx(5000)

    def test_simulate_without_allocation_fails(self, cli, data_files, monkeypatch):
        a = _write_csv(data_files["dir"] / "alpha.csv", [100 + i for i in range(len(DATES))])
        monkeypatch.setattr(sys, "argv", ["main.py", "simulate", str(a), "--weights", "0", "--no-benchmark"])
        assert cli.main() == 1

    def test_stats_command(self, cli, data_files, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["main.py", "stats", str(data_files["trend"])])
        assert cli.main() == 0
        assert "trend" in capsys.readouterr().out

    def test_correlate_command(self, cli, data_files, monkeypatch, capsys):
        a = _write_csv(data_files["dir"] / "alpha.csv", [100 + i for i in range(len(DATES))])
        b = _write_csv(data_files["dir"] / "beta.csv", [100 + (i % 3) for i in range(len(DATES))])
        monkeypatch.setattr(sys, "argv", ["main.py", "correlate", str(a), str(b)])
        assert cli.main() == 0
        out = capsys.readouterr().out
        assert "alpha" in out and "1.00" in out

    def test_correlate_accepts_json(self, cli, data_files, monkeypatch, capsys):
        """JSON 시계열도 상관계수 대상에 포함"""
        a = _write_csv(data_files["dir"] / "alpha.csv", [100 + i for i in range(len(DATES))])
        monkeypatch.setattr(sys, "argv", ["main.py", "correlate", str(data_files["trend"]), str(a)])
        assert cli.main() == 0
        out = capsys.readouterr().out
        assert "trend" in out and "alpha" in out

    def test_correlate_needs_two(self, cli, data_files, monkeypatch):
        a = _write_csv(data_files["dir"] / "alpha.csv", [100 + i for i in range(len(DATES))])
        monkeypatch.setattr(sys, "argv", ["main.py", "correlate", str(a)])
        assert cli.main() == 1
