from __future__ import annotations

"""API 공통 의존성 — 시크릿 검증"""

import os

from fastapi import Header, HTTPException

SECRET_ENV = "PORTFOLIO_API_SECRET"


def verify_secret(x_api_secret: str = Header(default="")) -> None:
    """임베드 프론트엔드 → Python API 호출 시 X-Api-Secret 헤더 검증

    PORTFOLIO_API_SECRET 미설정 시 개발 모드로 간주하여 통과.
    """
    expected = os.getenv(SECRET_ENV, "")
    if expected and x_api_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid API secret")
