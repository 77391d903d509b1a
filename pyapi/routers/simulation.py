from __future__ import annotations

import json
import math
import threading

from fastapi import APIRouter, Depends
from starlette.responses import Response

from pyapi.deps import verify_secret
from pyapi.schemas import CorrelationRequest, SeriesPayload, SimulateRequest, StatsRequest

router = APIRouter(prefix="/py", tags=["simulation"])


class _SafeEncoder(json.JSONEncoder):
    """inf/NaN → null, numpy 타입 → native"""
    def default(self, o):
        import numpy as np
        if isinstance(o, (np.integer,)):
            return int(o)
        if isinstance(o, (np.floating,)):
            v = float(o)
            return None if math.isnan(v) or math.isinf(v) else v
        return super().default(o)

    def encode(self, o):
        return super().encode(self._sanitize(o))

    def _sanitize(self, o):
        if isinstance(o, float):
            return None if math.isnan(o) or math.isinf(o) else o
        if isinstance(o, dict):
            return {k: self._sanitize(v) for k, v in o.items()}
        if isinstance(o, (list, tuple)):
            return [self._sanitize(v) for v in o]
        return o


def _json_response(data: dict) -> Response:
    """inf/NaN을 null로 치환하는 JSON 응답"""
    body = json.dumps(data, cls=_SafeEncoder, ensure_ascii=False)
    return Response(content=body, media_type="application/json")


def _to_series(payload: SeriesPayload):
    """CSV 행 형태 payload → TimeSeries (컬럼 자동 인식)"""
    from src.core.data_loader import detect_columns, series_from_rows
    from src.core.models import TimeSeries

    if not payload.rows:
        return TimeSeries()
    date_key, value_key = detect_columns(payload.rows[0].keys())
    if date_key is None or value_key is None:
        return TimeSeries()
    return series_from_rows(payload.rows, date_key, value_key)


def _build_inputs(req: SimulateRequest):
    """요청 → (전략 목록, 비중 dict, 벤치마크)"""
    from src.core.allocation import parse_allocation_params
    from src.core.data_loader import StrategyRegistry

    registry = StrategyRegistry()
    for idx, payload in enumerate(req.strategies):
        strategy = registry.add_upload(payload.name or f"strategy_{idx + 1}", _to_series(payload))
        if strategy is not None and payload.id:
            registry.allocations.pop(strategy.id, None)
            strategy.id = payload.id

    strategies = registry.strategies
    if req.strat and req.weights:
        allocations = parse_allocation_params(req.strat, req.weights, strategies)
    else:
        allocations = {}
        for key, weight in (req.allocations or {}).items():
            found = next(
                (s for s in strategies if s.id == key or s.name.lower() == key.strip().lower()),
                None,
            )
            if found is not None:
                allocations[found.id] = weight

    benchmark = _to_series(req.benchmark) if req.benchmark else None
    if benchmark is not None and len(benchmark) == 0:
        benchmark = None
    return strategies, allocations, benchmark


def _serialize_result(result, include_chart: bool = True) -> dict:
    """SimulationResult → JSON-safe dict"""
    from src.backtest.runner import BacktestRunner

    data = {
        "dates": result.dates,
        "combined_equity": result.combined_equity,
        "strategy_equities": {
            s.id: {"name": s.name, "values": result.strategy_equities[s.id]}
            for s in result.active_strategies
        },
        "benchmark_equity": result.benchmark_equity,
        "stats": result.stats.to_dict(),
        "benchmark_stats": result.benchmark_stats.to_dict() if result.benchmark_stats else None,
        "rebalance_frequency": result.rebalance_frequency.value,
        "rebalance_count": result.rebalance_count,
        "stress_periods": BacktestRunner().stress_rows(result),
    }
    if include_chart:
        data["chart_data"] = result.chart_data
    return data


def _run_simulation(req: SimulateRequest) -> dict | None:
    from src.backtest.engine import simulate

    strategies, allocations, benchmark = _build_inputs(req)
    result = simulate(
        strategies, allocations, req.initial_balance,
        req.rebalance_frequency, benchmark=benchmark,
    )
    if result is None:
        return None
    return _serialize_result(result, req.include_chart)


@router.post("/simulate")
def run_simulation(req: SimulateRequest, secret: None = Depends(verify_secret)):
    """포트폴리오 시뮬레이션 실행"""
    try:
        data = _run_simulation(req)
        if data is None:
            return _json_response({"data": None, "error": "활성 전략이 없거나 겹치는 데이터가 2일 미만입니다."})
        return _json_response({"data": data, "error": None})
    except Exception as e:
        return _json_response({"data": None, "error": str(e)})


# ── 슬라이더 등 연속 입력용: 최신 요청만 채택 ──

_executor = None
_executor_lock = threading.Lock()


def _get_executor():
    """재계산기 싱글톤 (동시 첫 요청에서도 1개만 생성)"""
    global _executor
    with _executor_lock:
        if _executor is None:
            from src.backtest.deferred import LatestWinsExecutor
            _executor = LatestWinsExecutor()
        return _executor


@router.post("/simulate/deferred")
def submit_simulation(req: SimulateRequest, secret: None = Depends(verify_secret)):
    """백그라운드 재계산 요청 — 이전 요청의 결과는 완료 시 폐기"""
    executor = _get_executor()
    executor.submit(_run_simulation, req)
    return {"data": {"generation": executor.generation}, "error": None}


@router.get("/simulate/latest")
def latest_simulation(secret: None = Depends(verify_secret)):
    """마지막으로 채택된 재계산 결과"""
    executor = _get_executor()
    settled = executor.settled_generation
    return _json_response({
        "data": {
            "generation": executor.adopted_generation,
            "settled_generation": settled,
            "pending": settled != executor.generation,
            "result": executor.latest(),
        },
        "error": executor.last_error,
    })


@router.post("/stats")
def run_stats(req: StatsRequest, secret: None = Depends(verify_secret)):
    """에퀴티 커브 + 날짜 → 성과 지표"""
    from src.backtest.analyzer import compute_stats
    from src.core.dates import normalize_date

    if len(req.equity_curve) != len(req.dates):
        return _json_response({"data": None, "error": "equity_curve와 dates 길이가 다릅니다."})

    dates = [normalize_date(d) for d in req.dates]
    invalid = [raw for raw, d in zip(req.dates, dates) if d is None]
    if invalid:
        return _json_response({"data": None, "error": f"날짜 형식을 인식할 수 없습니다: {invalid[:3]}"})

    try:
        stats = compute_stats(req.equity_curve, dates)
        return _json_response({"data": stats.to_dict(), "error": None})
    except Exception as e:
        return _json_response({"data": None, "error": str(e)})


@router.post("/correlation")
def run_correlation(req: CorrelationRequest, secret: None = Depends(verify_secret)):
    """시계열 간 수익률 상관계수 행렬"""
    from src.backtest.correlation import correlation_matrix
    from src.core.models import Strategy

    strategies = [
        Strategy(id=str(i), name=p.name or f"series_{i + 1}", data=_to_series(p))
        for i, p in enumerate(req.series)
    ]
    matrix = correlation_matrix(strategies)
    return _json_response({"data": {"names": [s.name for s in strategies], "matrix": matrix}, "error": None})
