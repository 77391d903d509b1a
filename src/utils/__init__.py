"""
Portfolio Backtester — Utils 패키지

로깅 등 공통 유틸리티. 다른 모든 계층에서 사용됩니다.

공개 API:
    - setup_logger: loguru 로거 설정
"""
from src.utils.logger import setup_logger

__all__ = [
    "setup_logger",
]
