from __future__ import annotations

"""
Portfolio Backtester — 설정 로더

settings.yaml과 .env 파일로부터 설정을 로드합니다.
싱글톤 패턴으로 앱 전체에서 동일한 설정 인스턴스를 공유합니다.

Depends on:
    - pyyaml (YAML 파싱)
    - python-dotenv (.env 파일 로드)

Used by:
    - src.utils.logger (로깅 레벨, 로테이션 설정)
    - src.backtest.runner (내장 전략, 벤치마크, 스트레스 구간)
    - main.py, pyapi (기본 초기자본 / 리밸런싱 주기)

Modification Guide:
    - 새 설정 섹션 추가: settings.yaml에 키 추가 + DEFAULT_CONFIG에 기본값 추가
    - 설정 파일 경로 변경: 환경변수 PORTFOLIO_SETTINGS
    - 경로 상수 추가: ROOT_DIR 기반으로 Path 상수 정의
"""
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from loguru import logger


# 프로젝트 루트 디렉토리
ROOT_DIR = Path(__file__).parent.parent.parent
CONFIG_DIR = ROOT_DIR / "config"
DATA_DIR = ROOT_DIR / "data"
LOGS_DIR = ROOT_DIR / "logs"

# settings.yaml이 없거나 섹션이 빠졌을 때 사용하는 기본값
DEFAULT_CONFIG: dict[str, Any] = {
    "simulation": {
        "initial_balance": 100_000,
        "rebalance_frequency": "monthly",
        "chart_max_points": 1000,
    },
    "strategies": [],
    "benchmark": None,
    "stress_periods": [
        {"name": "Dotcom Crash", "start": "2000-03-10", "end": "2002-10-09"},
        {"name": "2008 Financial Crisis", "start": "2007-10-09", "end": "2009-03-09"},
        {"name": "COVID-19 Crash", "start": "2020-02-19", "end": "2020-03-23"},
        {"name": "2022 Bear Market", "start": "2022-01-03", "end": "2022-10-12"},
        {"name": "2025 Tariffs Crash", "start": "2025-02-19", "end": "2025-04-08"},
    ],
    "logging": {
        "level": "INFO",
        "rotation": "10 MB",
        "retention": "30 days",
    },
}


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """dict 섹션 단위 병합 (override 우선)"""
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """settings.yaml 로드 (기본값과 병합)"""
    if config_path is None:
        config_path = os.getenv("PORTFOLIO_SETTINGS") or CONFIG_DIR / "settings.yaml"

    config_path = Path(config_path)
    if not config_path.exists():
        logger.debug(f"설정 파일 없음 — 기본값 사용: {config_path}")
        return deepcopy(DEFAULT_CONFIG)

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    return _merge(DEFAULT_CONFIG, config)


_env_loaded = False


def load_env() -> None:
    """환경 변수 로드 (.env)

    최초 1회만 실행되며, 이후 호출은 무시됩니다.
    """
    global _env_loaded
    if _env_loaded:
        return
    _env_loaded = True

    env_path = ROOT_DIR / ".env"
    if env_path.exists():
        load_dotenv(env_path)


def resolve_path(path: str | Path) -> Path:
    """설정 파일의 상대 경로를 프로젝트 루트 기준으로 해석"""
    p = Path(path)
    return p if p.is_absolute() else ROOT_DIR / p


# 싱글톤 설정 인스턴스
_config: dict[str, Any] | None = None


def get_config() -> dict[str, Any]:
    """글로벌 설정 싱글톤"""
    global _config
    if _config is None:
        load_env()
        _config = load_config()
    return _config


def reload_config() -> dict[str, Any]:
    """설정 캐시를 무효화하고 settings.yaml을 다시 읽음"""
    global _config
    _config = load_config()
    return _config
