"""
Portfolio Backtester — 로깅 설정

콘솔(컬러)과 logs/ 아래 회전 파일, 두 곳으로 loguru 출력을 구성합니다.
레벨/로테이션/보관 기간은 settings.yaml `logging:` 섹션을 따릅니다.

Depends on:
    - src.core.config (logging 섹션, LOGS_DIR)
    - loguru

Used by:
    - main.py (CLI 시작 시 1회, -v 이면 DEBUG)
    - 나머지 모듈은 `from loguru import logger`만 사용

Modification Guide:
    - 포맷 변경: CONSOLE_FORMAT / FILE_FORMAT 수정
    - 로그 파일명 변경: LOG_FILE_NAME
"""
import sys

from loguru import logger

from src.core.config import get_config, LOGS_DIR

LOG_FILE_NAME = "portfolio_backtester.log"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> — <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} — {message}"


def setup_logger(level: str | None = None, to_file: bool = True) -> None:
    """
    loguru 싱크 재구성.

    Args:
        level: 강제 레벨 (None이면 settings.yaml logging.level)
        to_file: False면 콘솔만 (테스트 / 일회성 실행)
    """
    log_cfg = get_config().get("logging", {})
    level = level or log_cfg.get("level", "INFO")

    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if to_file:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(LOGS_DIR / LOG_FILE_NAME),
            level=level,
            format=FILE_FORMAT,
            rotation=log_cfg.get("rotation", "10 MB"),
            retention=log_cfg.get("retention", "30 days"),
            encoding="utf-8",
        )

    logger.debug(f"로거 설정: level={level}, file={'on' if to_file else 'off'}")
