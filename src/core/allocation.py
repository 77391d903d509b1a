from __future__ import annotations

"""
Portfolio Backtester — 비중 파라미터 파서

공유 링크 형식 `?strat=Name1,Name2&weights=50,50`을 {전략 id: 비중} dict로 변환합니다.
CLI의 --strat/--weights 옵션도 같은 형식을 사용합니다.

Used by:
    - main.py (simulate 커맨드)
    - pyapi.routers.simulation (쿼리 파라미터)
"""
import math
from typing import Iterable
from urllib.parse import unquote

from loguru import logger

from src.core.models import Strategy


def parse_weight_list(weights: str) -> list[float | None]:
    """'50,25,x' → [50.0, 25.0, None]"""
    values: list[float | None] = []
    for token in weights.split(","):
        try:
            value = float(token.strip())
            values.append(None if math.isnan(value) else value)
        except ValueError:
            values.append(None)
    return values


def parse_allocation_params(strat: str | None, weights: str | None,
                            strategies: Iterable[Strategy]) -> dict[str, float]:
    """
    전략 이름 목록 + 비중 목록 → {전략 id: 비중}.

    - 이름은 URL 디코딩 후 대소문자 무시 비교
    - 찾을 수 없는 이름, 숫자가 아닌 비중은 건너뜀
    """
    if not strat or not weights:
        return {}

    strategies = list(strategies)
    names = [unquote(s.strip()).lower() for s in strat.split(",")]
    values = parse_weight_list(weights)

    allocations: dict[str, float] = {}
    for idx, name in enumerate(names):
        found = next((s for s in strategies if s.name.lower() == name), None)
        value = values[idx] if idx < len(values) else None
        if found is None or value is None:
            logger.debug(f"비중 파라미터 무시: {name!r}")
            continue
        allocations[found.id] = value

    if allocations:
        logger.info(f"비중 파라미터 적용: {allocations}")
    return allocations
