from __future__ import annotations

"""
Portfolio Backtester — 상관계수

두 전략 시계열의 단순 수익률 피어슨 상관계수를 겹치는 날짜에서만 계산합니다.

Used by:
    - main.py (correlate 커맨드), pyapi.routers.simulation (/py/correlation)
"""
import math
from typing import Mapping, Sequence

from src.core.models import Strategy


def correlate(series_a: Mapping[str, float], series_b: Mapping[str, float]) -> float | None:
    """
    겹치는 날짜 기준 수익률 상관계수.

    - 수익률은 두 시계열의 직전 값이 모두 양수인 지점에서만 계산
    - 수익률 쌍이 2개 미만이면 None
    - 한쪽 분산이 0이면 NaN 대신 0.0
    """
    intersection = sorted(set(series_a.keys()) & set(series_b.keys()))
    if len(intersection) < 2:
        return None

    values_a = [series_a[d] for d in intersection]
    values_b = [series_b[d] for d in intersection]

    ret_a: list[float] = []
    ret_b: list[float] = []
    for i in range(1, len(intersection)):
        prev_a, prev_b = values_a[i - 1], values_b[i - 1]
        if prev_a > 0 and prev_b > 0:
            ret_a.append((values_a[i] - prev_a) / prev_a)
            ret_b.append((values_b[i] - prev_b) / prev_b)

    if len(ret_a) < 2:
        return None

    n = len(ret_a)
    sum_a = sum(ret_a)
    sum_b = sum(ret_b)
    sum_a_sq = sum(x * x for x in ret_a)
    sum_b_sq = sum(y * y for y in ret_b)
    p_sum = sum(x * y for x, y in zip(ret_a, ret_b))

    num = p_sum - (sum_a * sum_b / n)
    var_product = (sum_a_sq - sum_a * sum_a / n) * (sum_b_sq - sum_b * sum_b / n)
    if var_product <= 0:
        return 0.0
    return num / math.sqrt(var_product)


def correlation_matrix(strategies: Sequence[Strategy]) -> list[list[float | None]]:
    """전략 간 상관계수 행렬 (대각선 1.0)"""
    n = len(strategies)
    matrix: list[list[float | None]] = [[None] * n for _ in range(n)]
    for i in range(n):
        matrix[i][i] = 1.0
        for j in range(i + 1, n):
            value = correlate(strategies[i].data, strategies[j].data)
            matrix[i][j] = value
            matrix[j][i] = value
    return matrix
