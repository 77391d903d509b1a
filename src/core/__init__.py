"""
Portfolio Backtester — Core 패키지

데이터 모델, 입력 정규화/로딩, 설정 로더.

공개 API:
    - TimeSeries, Strategy, AllocationSet, RebalanceFrequency: 데이터 모델
    - normalize_date, parse_number: 입력 정규화
    - load_csv, load_json, StrategyRegistry, DataFormatError: 시계열 로딩
    - parse_allocation_params: 공유 링크 비중 파서
    - get_config: settings.yaml 싱글톤 로더
"""
from src.core.config import get_config, load_env
from src.core.models import TimeSeries, Strategy, AllocationSet, RebalanceFrequency
from src.core.dates import normalize_date, parse_number
from src.core.data_loader import (
    load_csv, load_json, load_series, try_load_csv, StrategyRegistry, DataFormatError,
)
from src.core.allocation import parse_allocation_params

__all__ = [
    "get_config",
    "load_env",
    "TimeSeries",
    "Strategy",
    "AllocationSet",
    "RebalanceFrequency",
    "normalize_date",
    "parse_number",
    "load_csv",
    "load_json",
    "load_series",
    "try_load_csv",
    "StrategyRegistry",
    "DataFormatError",
    "parse_allocation_params",
]
