from __future__ import annotations

"""
Portfolio Backtester — 전략 시계열 로더

CSV 업로드 파일과 내장 전략 JSON(행 목록)을 TimeSeries로 변환합니다.
잘못된 행(날짜 파싱 불가, 비유한 값)은 조용히 버립니다.

CSV 컬럼 자동 인식 (대소문자 무시, 부분 문자열 매칭):
    - 날짜: 'date' 포함 헤더
    - 값: 'equity' / 'nav' / 'close' / 'balance' 포함 헤더

Depends on:
    - pandas (CSV 파싱)
    - src.core.dates (날짜/숫자 정규화)
    - src.core.models (TimeSeries, Strategy)

Used by:
    - src.backtest.runner (내장 전략 + 벤치마크 로드)
    - main.py (CLI CSV 입력), pyapi (업로드 행)

Modification Guide:
    - 값 컬럼 키워드 추가: VALUE_KEYWORDS에 추가
    - 새 파일 형식: load_xxx() 추가 후 StrategyRegistry에서 사용
"""
import json
import math
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd
from loguru import logger

from src.core.dates import normalize_date, parse_number
from src.core.models import Strategy, TimeSeries

DATE_KEYWORDS = ("date",)
VALUE_KEYWORDS = ("equity", "nav", "close", "balance")

PALETTE = ["#3b82f6", "#8b5cf6", "#10b981", "#f59e0b", "#ef4444", "#ec4899", "#6366f1", "#14b8a6"]


class DataFormatError(ValueError):
    """파일 구조가 전략 시계열로 해석되지 않을 때"""


def detect_columns(columns: Iterable[str]) -> tuple[str | None, str | None]:
    """(날짜 컬럼, 값 컬럼) 원본 헤더명 반환. 못 찾으면 None"""
    columns = list(columns)
    date_col = next(
        (c for c in columns if any(k in str(c).strip().lower() for k in DATE_KEYWORDS)),
        None,
    )
    value_col = next(
        (c for c in columns if any(k in str(c).strip().lower() for k in VALUE_KEYWORDS)),
        None,
    )
    return date_col, value_col


def series_from_rows(rows: Iterable[Mapping[str, Any]],
                     date_key: str = "Date",
                     value_key: str = "Equity") -> TimeSeries:
    """{date_key, value_key} 행 목록 → TimeSeries (잘못된 행은 버림)"""
    data: dict[str, float] = {}
    dropped = 0
    for row in rows:
        d = normalize_date(row.get(date_key))
        v = parse_number(row.get(value_key))
        if d is None or math.isnan(v):
            dropped += 1
            continue
        data[d] = v

    if dropped:
        logger.debug(f"잘못된 행 {dropped}건 제외")
    return TimeSeries(data)


def load_csv(source, name: str | None = None) -> TimeSeries:
    """
    CSV 파일 → TimeSeries.

    Args:
        source: 파일 경로 또는 file-like 객체
        name: 로그용 이름 (None이면 파일명)

    Raises:
        DataFormatError: 빈 파일, 컬럼 인식 실패, 유효 행 0건
    """
    label = name or (Path(source).name if isinstance(source, (str, Path)) else "upload")

    try:
        df = pd.read_csv(source, dtype=str, skip_blank_lines=True, keep_default_na=False)
    except pd.errors.EmptyDataError:
        raise DataFormatError(f"빈 파일입니다: {label}")

    if df.empty:
        raise DataFormatError(f"빈 파일입니다: {label}")

    date_col, value_col = detect_columns(df.columns)
    if date_col is None or value_col is None:
        detected = ", ".join(str(c) for c in list(df.columns)[:3])
        raise DataFormatError(
            f"'Date' 또는 'Equity' 컬럼이 없습니다: {label} (감지: {detected}...)"
        )

    series = series_from_rows(df.to_dict(orient="records"), date_col, value_col)
    if len(series) == 0:
        raise DataFormatError(f"유효한 행이 없습니다 (날짜 형식/값 확인): {label}")

    logger.info(f"CSV 로드: {label} — {len(series)}행 "
                f"({series.first_date()} ~ {series.last_date()})")
    return series


def try_load_csv(source, name: str | None = None) -> TimeSeries | None:
    """load_csv와 같지만 실패 시 None (경고 로그)"""
    try:
        return load_csv(source, name)
    except DataFormatError as e:
        logger.warning(str(e))
        return None


def load_json(path: str | Path,
              date_key: str = "Date",
              value_key: str = "Equity") -> TimeSeries:
    """내장 전략 JSON 파일 ([{Date, Equity}, ...]) → TimeSeries"""
    with open(path, "r", encoding="utf-8") as f:
        rows = json.load(f)
    if not isinstance(rows, list):
        raise DataFormatError(f"JSON 최상위가 행 목록이 아닙니다: {path}")
    return series_from_rows(rows, date_key, value_key)


def load_series(path: str | Path) -> TimeSeries:
    """확장자에 따라 CSV / JSON 로더 선택"""
    path = Path(path)
    if path.suffix.lower() == ".json":
        return load_json(path)
    return load_csv(path)


class StrategyRegistry:
    """
    세션 단위 전략 목록.

    - 내장 전략 id: bi-{순번}, 업로드 전략 id: u-{순번}
    - 색상은 등록 순서대로 팔레트 순환
    - 업로드 전략은 비중 0%로 시작 (allocations에 0 등록)
    """

    def __init__(self):
        self.strategies: list[Strategy] = []
        self.allocations: dict[str, float] = {}
        self._upload_seq = 0

    def __len__(self) -> int:
        return len(self.strategies)

    def _next_color(self) -> str:
        return PALETTE[len(self.strategies) % len(PALETTE)]

    def add_built_in(self, name: str, data: TimeSeries, info_url: str = "") -> Strategy:
        built_in_count = sum(1 for s in self.strategies if s.is_built_in)
        strategy = Strategy(
            id=f"bi-{built_in_count}", name=name, data=data,
            color=self._next_color(), is_built_in=True, info_url=info_url,
        )
        self.strategies.append(strategy)
        return strategy

    def add_upload(self, name: str, data: TimeSeries) -> Strategy | None:
        """업로드 전략 등록. 빈 시계열이면 등록하지 않음"""
        if len(data) == 0:
            logger.warning(f"유효 데이터 없음 — 전략 미등록: {name}")
            return None
        self._upload_seq += 1
        strategy = Strategy(
            id=f"u-{self._upload_seq}", name=name, data=data,
            color=self._next_color(), is_built_in=False,
        )
        self.strategies.append(strategy)
        self.allocations[strategy.id] = 0.0
        return strategy

    def upload_file(self, path: str | Path) -> Strategy | None:
        """CSV/JSON 파일을 읽어 업로드 전략으로 등록 (이름 = 확장자 제외 파일명)

        읽기 실패 / 형식 오류는 경고 로그 후 None.
        """
        path = Path(path)
        try:
            series = load_series(path)
        except (OSError, ValueError) as e:
            logger.warning(f"업로드 실패: {path.name} — {e}")
            return None
        return self.add_upload(path.stem, series)

    def remove(self, strategy_id: str) -> None:
        self.strategies = [s for s in self.strategies if s.id != strategy_id]
        self.allocations.pop(strategy_id, None)

    def get(self, strategy_id: str) -> Strategy | None:
        return next((s for s in self.strategies if s.id == strategy_id), None)

    def find_by_name(self, name: str) -> Strategy | None:
        target = name.strip().lower()
        return next((s for s in self.strategies if s.name.lower() == target), None)
