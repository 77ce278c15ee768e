"""
services/session_machine.py

시험 세션 상태 머신.

  IDLE ──select_exam──▶ INSTRUCTIONS ──begin──▶ IN_PROGRESS ──submit / tick(0)──▶ SUBMITTING ──mark_persisted──▶ COMPLETED
    ▲                        │                       │
    └────────cancel──────────┘                       └──cancel──▶ ABANDONED

종료 조정:
  수동 제출(submit)과 타이머 만료(tick이 0 도달)가 동시에 들어올 수 있다.
  두 경로 모두 같은 잠금 안에서 "phase == IN_PROGRESS 확인 → SUBMITTING 전이"를
  한 번에 수행하므로 먼저 도착한 쪽만 채점/저장을 실행하고 나머지는 무시된다.
  타이머는 채점 전에, 잠금 안에서 해제한다.
"""

import logging
import threading
from contextlib import ExitStack
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Tuple

from cbt_exam.errors import InvalidInput, LoadError, PreconditionFailure
from cbt_exam.models.answer_sheet import AnswerSheet
from cbt_exam.models.attempt_model import (
    TRIGGER_SUBMIT, TRIGGER_TIMEOUT, AttemptRecord, GradeResult,
)
from cbt_exam.models.exam_model import Exam
from cbt_exam.models.question_model import Question, validate_bank
from cbt_exam.models.session_state import SessionPhase, SessionView
from cbt_exam.services.countdown_timer import CountdownTimer
from cbt_exam.services.exam_service import grade

logger = logging.getLogger(__name__)

TimerFactory = Callable[[Callable[[], object]], CountdownTimer]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExamSession:
    """
    한 학생의 한 시험 응시 (안내 화면부터 종료까지).

    Args:
        student_id:    응시자 ID. 비어 있으면 PreconditionFailure.
        timer_factory: on_tick 콜백을 받아 타이머를 만드는 함수 (기본 CountdownTimer).
        on_terminate:  SUBMITTING 전이에 성공한 쪽이 정확히 한 번 호출하는 콜백.
                       인자로 생성된 AttemptRecord를 받는다.
    """

    def __init__(
        self,
        student_id: str,
        timer_factory: Optional[TimerFactory] = None,
        on_terminate: Optional[Callable[[AttemptRecord], None]] = None,
    ):
        if not student_id:
            raise PreconditionFailure("학생 식별 정보가 없습니다. 로그인 후 다시 시도하세요.")

        self.student_id = student_id
        self._timer_factory = timer_factory or CountdownTimer
        self._on_terminate = on_terminate
        self._lock = threading.Lock()
        self._timer_scope: Optional[ExitStack] = None

        self.phase = SessionPhase.IDLE
        self.exam: Optional[Exam] = None
        self.questions: Tuple[Question, ...] = ()
        self.sheet: Optional[AnswerSheet] = None
        self.time_remaining = 0
        self.current_index = 0
        self.started_at: Optional[datetime] = None
        self.trigger: Optional[str] = None
        self.result: Optional[GradeResult] = None
        self.record: Optional[AttemptRecord] = None
        self.attempt_id: Optional[str] = None

    # ── 내부 헬퍼 ────────────────────────────────────────────────────────────

    @property
    def exam_id(self) -> Optional[str]:
        return self.exam.id if self.exam else None

    @property
    def timer_armed(self) -> bool:
        return self._timer_scope is not None

    def _precondition(self, message: str) -> PreconditionFailure:
        return PreconditionFailure(message, phase=self.phase.value, exam_id=self.exam_id)

    def _require_in_progress(self) -> None:
        if self.phase is not SessionPhase.IN_PROGRESS:
            raise self._precondition("진행 중인 시험이 없습니다.")

    def _release_timer(self) -> None:
        scope, self._timer_scope = self._timer_scope, None
        if scope is not None:
            scope.close()

    def _terminate_locked(self, trigger: str) -> AttemptRecord:
        """IN_PROGRESS → SUBMITTING. 반드시 잠금을 잡은 상태에서 호출."""
        self.phase = SessionPhase.SUBMITTING
        self.trigger = trigger
        self._release_timer()

        self.result = grade(self.sheet, self.questions, self.exam.pass_percentage)
        self.record = AttemptRecord(
            exam_id=self.exam.id,
            student_id=self.student_id,
            course_id=self.exam.course_id,
            answers=self.sheet.snapshot(),
            score=self.result.score,
            total_questions=self.result.total_questions,
            percentage=self.result.percentage,
            passed=self.result.passed,
            started_at=self.started_at,
            completed_at=_now(),
            trigger=trigger,
        )
        return self.record

    def _notify(self, record: AttemptRecord) -> None:
        logger.info(
            f"시험 종료({record.trigger}): student={self.student_id} exam={record.exam_id} "
            f"score={record.score}/{record.total_questions} ({record.percentage}%)"
        )
        if self._on_terminate is not None:
            self._on_terminate(record)

    # ── 전이 ────────────────────────────────────────────────────────────────

    def select_exam(self, exam: Exam) -> None:
        with self._lock:
            if self.phase not in (SessionPhase.IDLE, SessionPhase.INSTRUCTIONS):
                raise self._precondition("현재 단계에서는 시험을 선택할 수 없습니다.")
            self.exam = exam
            self.phase = SessionPhase.INSTRUCTIONS

    def begin(self, questions: Iterable[Question]) -> None:
        """
        문제 은행을 받아 시험을 시작하고 타이머를 건다.

        문제 은행이 비었거나 순서가 맞지 않으면 LoadError: 단계는 INSTRUCTIONS 유지.
        """
        with self._lock:
            if self.phase is not SessionPhase.INSTRUCTIONS:
                raise self._precondition("안내 화면에서만 시험을 시작할 수 있습니다.")

            bank = tuple(questions or ())
            reason = validate_bank(list(bank))
            if reason:
                raise LoadError(reason, phase=self.phase.value, exam_id=self.exam_id)

            scope = ExitStack()
            scope.enter_context(self._timer_factory(self.tick))

            self._timer_scope = scope
            self.questions = bank
            self.sheet = AnswerSheet(question_count=len(bank))
            self.time_remaining = self.exam.duration_seconds
            self.current_index = 0
            self.started_at = _now()
            self.phase = SessionPhase.IN_PROGRESS

        logger.info(
            f"시험 시작: student={self.student_id} exam={self.exam_id} "
            f"questions={len(bank)} duration={self.time_remaining}s"
        )

    def cancel(self) -> None:
        """
        INSTRUCTIONS → IDLE (선택 취소), IN_PROGRESS → ABANDONED (기록 없음).
        IDLE/ABANDONED에서는 아무 일도 하지 않는다.
        """
        with self._lock:
            if self.phase is SessionPhase.INSTRUCTIONS:
                self.exam = None
                self.phase = SessionPhase.IDLE
            elif self.phase is SessionPhase.IN_PROGRESS:
                self.phase = SessionPhase.ABANDONED
                self._release_timer()
                logger.info(f"시험 중단: student={self.student_id} exam={self.exam_id}")
            elif self.phase in (SessionPhase.SUBMITTING, SessionPhase.COMPLETED):
                raise self._precondition("이미 제출된 시험은 취소할 수 없습니다.")

    def select_answer(self, index: int, option: str) -> None:
        with self._lock:
            self._require_in_progress()
            try:
                self.sheet.select(index, option)
            except InvalidInput as e:
                e.phase, e.exam_id = self.phase.value, self.exam_id
                raise

    def clear_answer(self, index: int) -> None:
        with self._lock:
            self._require_in_progress()
            try:
                self.sheet.clear(index)
            except InvalidInput as e:
                e.phase, e.exam_id = self.phase.value, self.exam_id
                raise

    def navigate(self, direction: int) -> int:
        """이전(-1) / 다음(+1) 문제로 이동. 양 끝에서는 멈춘다."""
        if direction not in (-1, 1) or isinstance(direction, bool):
            raise InvalidInput(
                f"이동 방향은 -1 또는 1이어야 합니다. (입력: {direction!r})",
                phase=self.phase.value, exam_id=self.exam_id,
            )
        with self._lock:
            self._require_in_progress()
            self.current_index = max(0, min(self.current_index + direction, len(self.questions) - 1))
            return self.current_index

    def go_to(self, index: int) -> int:
        """문제 번호 네비게이터. 범위를 벗어난 번호는 양 끝으로 보정."""
        with self._lock:
            self._require_in_progress()
            self.current_index = max(0, min(int(index), len(self.questions) - 1))
            return self.current_index

    def tick(self) -> Optional[AttemptRecord]:
        """
        남은 시간을 1초 줄인다. 0이 되면 자동 제출.

        진행 중이 아니면 무시하고 None 반환 (만료 후 늦게 도착한 tick 포함).
        """
        with self._lock:
            if self.phase is not SessionPhase.IN_PROGRESS:
                return None
            self.time_remaining = max(0, self.time_remaining - 1)
            if self.time_remaining > 0:
                return None
            record = self._terminate_locked(TRIGGER_TIMEOUT)

        self._notify(record)
        return record

    def submit(self) -> Optional[AttemptRecord]:
        """
        수동 제출. 이 호출이 종료 전이를 수행했으면 AttemptRecord, 이미 종료된 세션이면 None.
        """
        with self._lock:
            if self.phase in (SessionPhase.IDLE, SessionPhase.INSTRUCTIONS):
                raise self._precondition("시작하지 않은 시험은 제출할 수 없습니다.")
            if self.phase is not SessionPhase.IN_PROGRESS:
                return None
            record = self._terminate_locked(TRIGGER_SUBMIT)

        self._notify(record)
        return record

    def mark_persisted(self, attempt_id: str) -> None:
        with self._lock:
            if self.phase is not SessionPhase.SUBMITTING:
                raise self._precondition("제출 중인 시험이 아닙니다.")
            self.attempt_id = attempt_id
            self.phase = SessionPhase.COMPLETED

    # ── 조회 ────────────────────────────────────────────────────────────────

    def question(self, index: int) -> dict:
        """문제 한 개 (정답 제외) + 저장된 답안."""
        with self._lock:
            if not self.questions or not 0 <= index < len(self.questions):
                raise InvalidInput(
                    f"문제를 찾을 수 없습니다. (위치 {index})",
                    phase=self.phase.value, exam_id=self.exam_id,
                )
            d = self.questions[index].public_dict()
            d.update({
                "saved_answer": self.sheet.get(index) if self.sheet else None,
                "total": len(self.questions),
            })
            return d

    def view(self) -> SessionView:
        with self._lock:
            current = None
            if self.phase is SessionPhase.IN_PROGRESS and self.questions:
                current = self.questions[self.current_index].public_dict()
            answered = [self.sheet.is_answered(i) for i in range(len(self.questions))] if self.sheet else []

            return SessionView(
                phase=self.phase,
                exam=self.exam,
                time_remaining=self.time_remaining,
                current_index=self.current_index,
                current_question=current,
                answered=answered,
                answered_count=sum(answered),
                trigger=self.trigger,
                result=self.result,
                attempt_id=self.attempt_id,
            )
