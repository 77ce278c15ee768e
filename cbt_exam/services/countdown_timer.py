"""
services/countdown_timer.py

시험 세션 카운트다운 타이머.

asyncio 이벤트 루프 위에서 동작하는 협력형 타이머:
  - arm()    : 현재 실행 중인 루프에 태스크를 등록. interval마다 on_tick 호출.
  - cancel() : 멱등. 다른 스레드에서 호출해도 안전 (call_soon_threadsafe).
  - with 문  : 진입 시 arm, 종료 시 cancel: 세션의 진행 구간 동안 보유.

한 번 취소된 타이머는 다시 사용할 수 없다. 세션마다 새 타이머를 만든다.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from config import TICK_INTERVAL

logger = logging.getLogger(__name__)


def format_remaining(seconds: int) -> str:
    """남은 시간을 MM:SS 형식으로."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class CountdownTimer:
    def __init__(
        self,
        on_tick: Callable[[], object],
        interval: float = TICK_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._on_tick = on_tick
        self._interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._cancelled = False

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def arm(self) -> None:
        if self._cancelled:
            raise RuntimeError("취소된 타이머는 다시 시작할 수 없습니다.")
        if self._task is not None:
            raise RuntimeError("타이머가 이미 동작 중입니다.")
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run())

    def cancel(self) -> None:
        self._cancelled = True
        task, self._task = self._task, None
        if task is None or task.done():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            task.cancel()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(task.cancel)

    async def _run(self) -> None:
        try:
            while not self._cancelled:
                await self._sleep(self._interval)
                # sleep 도중 취소되었으면 tick을 보내지 않는다
                if self._cancelled:
                    break
                self._on_tick()
        except Exception:
            logger.exception("타이머 tick 처리 중 오류: 타이머 중지")
            self._cancelled = True

    def __enter__(self) -> "CountdownTimer":
        self.arm()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()
