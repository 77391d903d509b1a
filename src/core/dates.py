from __future__ import annotations

"""
Portfolio Backtester — 날짜/숫자 정규화

CSV, JSON 등에서 들어오는 다양한 날짜 문자열을 정렬 가능한 `YYYY-MM-DD` 키로 변환합니다.

인식 순서:
    1. YYYY-MM-DD (이미 정규형)
    2. M/D/YYYY, M/D/YY (미국식, 2자리 연도 <50 → 20xx, 그 외 19xx)
    3. D.M.YYYY (유럽식)
    4. pandas 범용 파싱

Used by:
    - src.core.data_loader (행 단위 정규화, 실패 행은 버림)
    - src.backtest.frequency, src.backtest.timeline (날짜 → datetime 변환)
"""
import math
import re
from datetime import date, datetime

import pandas as pd

_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_MDY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")
_DMY_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")


def _canonical(year: int, month: int, day: int) -> str | None:
    """실제 달력 날짜인 경우에만 YYYY-MM-DD 반환"""
    try:
        return date(year, month, day).strftime("%Y-%m-%d")
    except ValueError:
        return None


def normalize_date(value) -> str | None:
    """
    원시 날짜 값을 `YYYY-MM-DD` 문자열로 변환.

    Args:
        value: 문자열 또는 숫자 (CSV 셀, JSON 필드)

    Returns:
        정규화된 날짜 문자열. 파싱 불가 시 None (호출 측에서 해당 행을 버림)
    """
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")

    s = str(value).strip()
    if not s:
        return None

    m = _ISO_RE.match(s)
    if m:
        return _canonical(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _MDY_RE.match(s)
    if m:
        month, day, year = m.groups()
        if len(year) == 2:
            year = ("20" if int(year) < 50 else "19") + year
        elif len(year) == 3:
            return None
        return _canonical(int(year), int(month), int(day))

    m = _DMY_RE.match(s)
    if m:
        day, month, year = m.groups()
        return _canonical(int(year), int(month), int(day))

    parsed = pd.to_datetime(s, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.strftime("%Y-%m-%d")


def parse_number(value) -> float:
    """'$1,234.50' 같은 값을 float로 변환. 실패/비유한 값은 NaN"""
    if value is None:
        return math.nan
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        v = float(value)
        return v if math.isfinite(v) else math.nan

    s = str(value).replace("$", "").replace(",", "").strip()
    try:
        v = float(s)
    except ValueError:
        return math.nan
    return v if math.isfinite(v) else math.nan


def to_datetime(date_str: str) -> datetime:
    """정규화된 날짜 문자열 → datetime (UTC 자정, 타임존 없음)"""
    return datetime.strptime(date_str, "%Y-%m-%d")
