"""
api/session.py — 학생별 인메모리 세션 컨트롤러 레지스트리

학생 ID마다 SessionController 하나를 유지 (학생당 활성 세션 최대 1개).
TTL(기본 1시간) 동안 접근이 없으면 만료된다. 진행 중이거나 저장 중인 시험은 유지하고,
저장이 최종 실패한 채 방치된 세션은 만료 시 결과를 로그로 남긴다.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional

from config import SESSION_TTL
from cbt_exam.models.session_state import SessionPhase
from cbt_exam.services.session_controller import SessionController

logger = logging.getLogger(__name__)


class SessionRegistry:

    def __init__(self, factory: Callable[[str], SessionController], ttl: float = SESSION_TTL):
        self._factory = factory
        self._ttl = ttl
        self._lock = threading.Lock()
        self._controllers: Dict[str, SessionController] = {}
        self._timestamps: Dict[str, float] = {}

    def get_or_create(self, student_id: str) -> SessionController:
        """학생의 컨트롤러를 가져오거나 새로 생성. 접근 시 TTL 갱신."""
        with self._lock:
            controller = self._controllers.get(student_id)
            if controller is None:
                controller = self._factory(student_id)
                self._controllers[student_id] = controller
            self._timestamps[student_id] = time.time()
            return controller

    def get(self, student_id: str) -> Optional[SessionController]:
        with self._lock:
            return self._controllers.get(student_id)

    def _expired(self, now: float):
        expired = []
        for sid, ts in self._timestamps.items():
            if now - ts <= self._ttl:
                continue
            controller = self._controllers[sid]
            # 진행 중 / 저장 중인 시험은 만료시키지 않는다. 저장이 최종 실패한 세션은 예외
            if controller.phase is SessionPhase.IN_PROGRESS:
                continue
            if controller.phase is SessionPhase.SUBMITTING and not controller.save_error:
                continue
            expired.append(sid)
        return expired

    def cleanup_expired(self) -> int:
        """만료된 컨트롤러를 정리. 제거된 수 반환."""
        now = time.time()
        with self._lock:
            removed = [(sid, self._controllers.pop(sid)) for sid in self._expired(now)]
            for sid, _ in removed:
                del self._timestamps[sid]
        for _, controller in removed:
            controller.shutdown()
        return len(removed)

    def shutdown(self) -> None:
        """서버 종료: 모든 세션의 타이머 해제."""
        with self._lock:
            controllers = list(self._controllers.values())
            self._controllers.clear()
            self._timestamps.clear()
        for controller in controllers:
            controller.shutdown()
        if controllers:
            logger.info(f"서버 종료: 세션 {len(controllers)}개 정리")

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)
