from __future__ import annotations

"""
Portfolio Backtester — 메인 진입점

CLI를 통해 포트폴리오 시뮬레이션 / 통계 / 상관계수를 실행하는 얇은 오케스트레이터.
직접적인 계산 로직은 포함하지 않으며, 각 모듈에 위임합니다.

실행 흐름 (simulate):
    1. BacktestRunner.load_built_ins() / upload() — 전략 시계열 로드
    2. parse_allocation_params() — 비중 결정
    3. BacktestRunner.run() — 리밸런싱 시뮬레이션 + 통계
    4. BacktestRunner.report() — 콘솔 리포트 (+ CSV)

Depends on:
    - src.backtest.* (시뮬레이션, 통계, 상관계수)
    - src.core.* (데이터 로드, 설정)
    - src.utils.* (로깅)

Modification Guide:
    - CLI 커맨드 추가: main()의 subparsers에 추가 + cmd_xxx() 함수 작성
    - 상세 로직 변경: 해당 모듈(runner/engine/analyzer)에서 직접 수정
"""
import sys
from pathlib import Path

from loguru import logger

# 프로젝트 루트를 sys.path에 추가
ROOT_DIR = Path(__file__).parent
sys.path.insert(0, str(ROOT_DIR))

from src.utils.logger import setup_logger
from src.core.config import get_config, load_env
from src.core.allocation import parse_allocation_params, parse_weight_list
from src.core.data_loader import DataFormatError, load_series
from src.core.models import RebalanceFrequency
from src.backtest.analyzer import PerformanceAnalyzer, compute_stats
from src.backtest.correlation import correlation_matrix
from src.backtest.runner import BacktestRunner


def _resolve_allocations(runner: BacktestRunner, uploaded: list, args) -> dict[str, float]:
    """--strat/--weights → {id: 비중}. --strat 없으면 업로드 순서대로, 비중도 없으면 균등"""
    if args.strat:
        return parse_allocation_params(args.strat, args.weights, runner.strategies)

    if args.weights:
        values = parse_weight_list(args.weights)
        return {
            s.id: w for s, w in zip(uploaded, values) if w is not None
        }

    if uploaded:
        equal = 100 / len(uploaded)
        return {s.id: equal for s in uploaded}
    return {}


def cmd_simulate(args) -> int:
    runner = BacktestRunner()
    if args.built_in:
        runner.load_built_ins()
    if args.benchmark:
        runner.load_benchmark(args.benchmark)
    elif not args.built_in:
        runner.load_benchmark()

    uploaded = []
    for path in args.files:
        strategy = runner.upload(path)
        if strategy is not None:
            uploaded.append(strategy)

    allocations = _resolve_allocations(runner, uploaded, args)
    if not allocations:
        logger.error("배분된 전략이 없습니다. --weights 또는 --strat을 확인하세요.")
        return 1

    result = runner.run(
        allocations,
        initial_balance=args.capital,
        rebalance_frequency=args.rebalance,
        use_benchmark=not args.no_benchmark,
    )
    if result is None:
        return 1

    runner.report(result, csv=args.csv, csv_path=args.csv_path)
    return 0


def cmd_stats(args) -> int:
    try:
        series = load_series(args.file)
    except (OSError, DataFormatError) as e:
        logger.error(str(e))
        return 1

    dates = list(series.dates())
    stats = compute_stats([series[d] for d in dates], dates)
    PerformanceAnalyzer(stats, title=Path(args.file).stem).print_report()
    return 0


def cmd_correlate(args) -> int:
    runner = BacktestRunner()
    for path in args.files:
        runner.upload(path)

    strategies = runner.strategies
    if len(strategies) < 2:
        logger.error("상관계수 계산에는 전략 2개 이상이 필요합니다.")
        return 1

    matrix = correlation_matrix(strategies)
    width = max(len(s.name) for s in strategies) + 2
    print()
    print(" " * width + "".join(f"{s.name[:10]:>12s}" for s in strategies))
    for s, row in zip(strategies, matrix):
        cells = "".join(f"{'—':>12s}" if v is None else f"{v:>12.2f}" for v in row)
        print(f"{s.name:<{width}s}{cells}")
    print()
    return 0


def main() -> int:
    """
    CLI 진입점.

    사용법:
        python3 main.py simulate a.csv b.csv --weights 60,40 --rebalance quarterly
        python3 main.py simulate --built-in --strat "Trend,Carry" --weights 50,50 --capital 250000
        python3 main.py simulate a.csv --benchmark data/spy.json --csv
        python3 main.py stats a.csv
        python3 main.py correlate a.csv b.csv c.csv
    """
    import argparse

    parser = argparse.ArgumentParser(description="Portfolio Backtester — 전략 포트폴리오 시뮬레이터")
    parser.add_argument("-v", "--verbose", action="store_true", help="DEBUG 로그 출력")
    subparsers = parser.add_subparsers(dest="command", help="실행 명령")

    sim_cfg = get_config().get("simulation", {})

    sim_parser = subparsers.add_parser("simulate", help="포트폴리오 시뮬레이션")
    sim_parser.add_argument("files", nargs="*", help="전략 CSV/JSON 파일 (Date + Equity/NAV/Close/Balance 컬럼)")
    sim_parser.add_argument("--built-in", action="store_true", default=False,
                            help="settings.yaml의 내장 전략 로드")
    sim_parser.add_argument("--strat", type=str, default=None,
                            help="전략 이름 목록 (콤마 구분, 대소문자 무시)")
    sim_parser.add_argument("--weights", type=str, default=None,
                            help="비중 목록 %% (콤마 구분, 예: 60,40)")
    sim_parser.add_argument("--rebalance", default=sim_cfg.get("rebalance_frequency", "monthly"),
                            choices=[f.value for f in RebalanceFrequency],
                            help="리밸런싱 주기")
    sim_parser.add_argument("--capital", type=float,
                            default=sim_cfg.get("initial_balance", 100_000),
                            help="초기 자본금")
    sim_parser.add_argument("--benchmark", type=str, default=None,
                            help="벤치마크 파일 (CSV/JSON)")
    sim_parser.add_argument("--no-benchmark", action="store_true", default=False,
                            help="벤치마크 비교 비활성")
    sim_parser.add_argument("--csv", action="store_true", default=False,
                            help="에퀴티 커브 CSV 내보내기")
    sim_parser.add_argument("--csv-path", type=str, default=None,
                            help="CSV 저장 경로 (기본: data/portfolio_equity.csv)")

    stats_parser = subparsers.add_parser("stats", help="단일 시계열 성과 지표")
    stats_parser.add_argument("file", help="CSV/JSON 파일")

    corr_parser = subparsers.add_parser("correlate", help="전략 간 수익률 상관계수")
    corr_parser.add_argument("files", nargs="+", help="전략 CSV/JSON 파일 (2개 이상)")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    load_env()
    setup_logger(level="DEBUG" if args.verbose else None)

    commands = {
        "simulate": cmd_simulate,
        "stats": cmd_stats,
        "correlate": cmd_correlate,
    }
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
