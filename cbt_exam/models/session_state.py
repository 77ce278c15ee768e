"""
models/session_state.py

화면(프레젠테이션 계층)에 노출하는 시험 세션 읽기 모델.
Pydantic BaseModel 기반: 직렬화 및 타입 안전성 확보.
UI 코드 없음.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from cbt_exam.models.attempt_model import GradeResult
from cbt_exam.models.exam_model import Exam


class SessionPhase(str, Enum):
    IDLE = "idle"
    INSTRUCTIONS = "instructions"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.COMPLETED, SessionPhase.ABANDONED)


class SessionView(BaseModel):
    """
    사용자의 시험 세션 상태 스냅샷.

    Attributes:
        phase:            세션 단계.
        exam:             선택한 시험 (IDLE이면 None).
        time_remaining:   남은 시간 (초). 진행 중에만 감소.
        current_index:    현재 보고 있는 문제 위치 (0-based).
        current_question: 현재 문제 (정답 제외). 진행 중이 아니면 None.
        answered:         문제별 응답 여부.
        answered_count:   응답한 문제 수.
        result:           채점 결과 (SUBMITTING 이후).
        attempt_id:       저장된 응시 기록 ID (COMPLETED).
        save_error:       마지막 저장 실패 메시지.
    """

    phase: SessionPhase = SessionPhase.IDLE
    exam: Optional[Exam] = None
    time_remaining: int = Field(default=0, ge=0)
    current_index: int = Field(default=0, ge=0)
    current_question: Optional[dict] = None
    answered: List[bool] = Field(default_factory=list)
    answered_count: int = 0
    trigger: Optional[str] = None
    result: Optional[GradeResult] = None
    attempt_id: Optional[str] = None
    save_error: Optional[str] = None
