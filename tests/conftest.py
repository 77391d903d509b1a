from __future__ import annotations

from copy import deepcopy

import pandas as pd
import pytest

from src.core import config as config_module
from src.core.models import Strategy, TimeSeries


def business_days(start: str, n: int) -> list[str]:
    """start부터 영업일 n개 (YYYY-MM-DD)"""
    return pd.bdate_range(start, periods=n).strftime("%Y-%m-%d").tolist()


def make_strategy(sid: str, dates: list[str], prices: list[float], name: str | None = None) -> Strategy:
    return Strategy(id=sid, name=name or sid, data=TimeSeries(dict(zip(dates, prices))))


@pytest.fixture(autouse=True)
def _default_config(monkeypatch):
    """settings.yaml과 무관하게 기본 설정으로 테스트"""
    monkeypatch.setattr(config_module, "_config", deepcopy(config_module.DEFAULT_CONFIG))


@pytest.fixture
def scenario_strategies():
    """A: +10%, -10%, +10% / B: 항상 0%"""
    dates = ["2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05"]
    a = make_strategy("A", dates, [100.0, 110.0, 99.0, 108.9])
    b = make_strategy("B", dates, [100.0, 100.0, 100.0, 100.0])
    return [a, b]


@pytest.fixture
def two_year_strategies():
    """2년치 영업일: 추세형 A, 진동형 B"""
    dates = business_days("2021-01-01", 520)
    a_prices = [100.0 * (1.0004 ** i) for i in range(len(dates))]
    b_prices = [100.0 + (5.0 if i % 2 else -5.0) + i * 0.01 for i in range(len(dates))]
    return [
        make_strategy("A", dates, a_prices, name="Trend"),
        make_strategy("B", dates, b_prices, name="Swing"),
    ]
