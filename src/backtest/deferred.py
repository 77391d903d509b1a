from __future__ import annotations

"""
Portfolio Backtester — 지연 재계산 (latest wins)

입력(비중 슬라이더 등)이 빠르게 바뀔 때 시뮬레이션을 백그라운드 워커 1개에서 실행하고,
완료 시점에 더 새로운 요청이 이미 들어와 있으면 그 결과는 버립니다.

규칙:
    - 요청마다 세대 번호를 부여
    - 완료된 결과는 자신이 최신 세대일 때만 채택 (병합 없음)
    - 채택 전 결과(부분/중간 상태)는 외부에서 관찰할 수 없음
    - 최신 세대가 실패해도 완료(settled)로 기록하고 오류를 노출 (직전 채택 결과는 유지)

Used by:
    - pyapi.routers.simulation (연속 요청 디바운스)

Modification Guide:
    - 워커 수 변경 금지: 단일 워커여야 완료 순서 = 제출 순서
"""
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from loguru import logger


class LatestWinsExecutor:
    """
    사용법:
        executor = LatestWinsExecutor(on_result=publish)
        executor.submit(simulate, strategies, allocations, 100_000, "monthly")
        executor.submit(simulate, strategies, new_allocations, 100_000, "monthly")
        executor.wait()
        executor.latest()   # 두 번째 요청의 결과만 채택됨
    """

    def __init__(self, on_result: Callable[[Any], None] | None = None):
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="recompute")
        self._lock = threading.Lock()
        self._generation = 0
        self._adopted_generation = 0
        self._settled_generation = 0
        self._last_error: str | None = None
        self._latest: Any = None
        self._pending: Future | None = None
        self._on_result = on_result
        self.discarded = 0

    @property
    def generation(self) -> int:
        return self._generation

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """계산 요청 제출. 이전 요청은 완료 시 폐기 대상이 됨"""
        with self._lock:
            self._generation += 1
            generation = self._generation

        future = self._pool.submit(fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._complete(generation, f))
        with self._lock:
            self._pending = future
        return future

    def _complete(self, generation: int, future: Future) -> None:
        if future.cancelled():
            return

        error = future.exception()
        if error is not None:
            logger.error(f"재계산 실패 (세대 {generation}): {error}")
            with self._lock:
                # 최신 세대의 실패도 완료로 기록 (이전 결과는 유지, 오류 노출)
                if generation == self._generation:
                    self._settled_generation = generation
                    self._last_error = str(error)
            return

        result = future.result()
        with self._lock:
            if generation != self._generation:
                self.discarded += 1
                logger.debug(f"오래된 결과 폐기: 세대 {generation} < {self._generation}")
                return
            self._latest = result
            self._adopted_generation = generation
            self._settled_generation = generation
            self._last_error = None

        if self._on_result is not None:
            self._on_result(result)

    def latest(self) -> Any:
        """마지막으로 채택된 결과 (없으면 None)"""
        with self._lock:
            return self._latest

    @property
    def adopted_generation(self) -> int:
        """결과가 채택된 마지막 세대"""
        with self._lock:
            return self._adopted_generation

    @property
    def settled_generation(self) -> int:
        """성공/실패와 관계없이 완료 처리된 마지막 세대 (== generation 이면 대기 중인 요청 없음)"""
        with self._lock:
            return self._settled_generation

    @property
    def last_error(self) -> str | None:
        """최신 세대가 실패했을 때의 오류 메시지 (성공 시 None)"""
        with self._lock:
            return self._last_error

    def wait(self, timeout: float | None = None) -> None:
        """가장 최근 요청이 끝날 때까지 대기 (채택 콜백 포함)"""
        with self._lock:
            pending = self._pending
        if pending is None:
            return
        # 단일 워커이므로 빈 작업이 끝나면 그 이전 작업의 done 콜백도 모두 실행된 상태
        self._pool.submit(lambda: None).result(timeout=timeout)

    def shutdown(self) -> None:
        self._pool.shutdown(wait=True)
