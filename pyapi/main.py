from __future__ import annotations

"""Portfolio Backtester Python API — 시뮬레이션/통계/상관계수 경량 API"""

import sys
from pathlib import Path

# src/ 패키지 import용
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from pyapi.routers import simulation

LOCAL_FRONTEND = "http://localhost:3000"


def _allowed_origins() -> list[str]:
    """로컬 프론트엔드 + ALLOWED_ORIGINS (콤마 구분) 임베드 도메인"""
    extra = os.environ.get("ALLOWED_ORIGINS", "")
    return [LOCAL_FRONTEND] + [o.strip() for o in extra.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    from src.core.config import get_config, load_env

    load_env()
    sim_cfg = get_config()["simulation"]
    logger.info(f"API 시작 — 기본 리밸런싱: {sim_cfg['rebalance_frequency']}, "
                f"기본 자본: {sim_cfg['initial_balance']:,}")

    yield

    # 백그라운드 재계산 워커 종료
    if simulation._executor is not None:
        simulation._executor.shutdown()


app = FastAPI(title="Portfolio Backtester API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(simulation.router)


@app.get("/py/health")
def health_check():
    """API 상태 확인용"""
    return {"status": "ok", "message": "Portfolio Backtester API is running"}
