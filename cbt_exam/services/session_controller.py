"""
services/session_controller.py

세션 상태 머신과 외부 저장소(시험 카탈로그, 응시 기록) 사이의 경계.

  - 시험/문제 은행 조회 오류는 LoadError로 감싸서 호출자에게 전달 (세션은 안내 화면 유지)
  - 종료 전이에 성공한 쪽(수동 제출 또는 타이머)이 응시 기록을 정확히 한 번 저장
  - 저장 실패 시 이미 계산된 결과로 지수 백오프 재시도, 끝내 실패하면 WriteError
    (세션은 SUBMITTING에 머물며 retry_save()로 같은 기록을 다시 저장할 수 있다)

상태 머신이 가진 것 외의 세션 상태는 두지 않는다.
"""

import asyncio
import logging
import threading
import time
from typing import List, Optional

from config import SAVE_RETRIES, SAVE_RETRY_DELAY
from cbt_exam.errors import CBTError, LoadError, PreconditionFailure, WriteError
from cbt_exam.models.attempt_model import AttemptRecord, GradeResult
from cbt_exam.models.exam_model import Exam
from cbt_exam.models.session_state import SessionPhase, SessionView
from cbt_exam.services import exam_service
from cbt_exam.services.session_machine import ExamSession, TimerFactory
from cbt_exam.services.stores import CatalogStore, HistoryStore

logger = logging.getLogger(__name__)


class SessionController:

    def __init__(
        self,
        student_id: str,
        catalog: CatalogStore,
        history: HistoryStore,
        timer_factory: Optional[TimerFactory] = None,
        save_retries: int = SAVE_RETRIES,
        retry_delay: float = SAVE_RETRY_DELAY,
    ):
        if not student_id:
            raise PreconditionFailure("학생 식별 정보가 없습니다. 로그인 후 다시 시도하세요.")
        self.student_id = student_id
        self.catalog = catalog
        self.history = history
        self.timer_factory = timer_factory
        self.save_retries = max(1, save_retries)
        self.retry_delay = retry_delay

        self.session: Optional[ExamSession] = None
        self.save_error: Optional[str] = None
        self._save_lock = threading.Lock()
        # 타이머 경로의 백그라운드 저장이 진행 중이면 clear
        self._save_done = threading.Event()
        self._save_done.set()

    # ── 카탈로그 / 기록 조회 (단순 전달) ────────────────────────────────────

    def list_exams(self, course_id: Optional[str] = None) -> List[Exam]:
        return self.catalog.list_exams(course_id)

    def history_list(self) -> List[AttemptRecord]:
        return self.history.list_attempts(self.student_id)

    # ── 세션 수명 ───────────────────────────────────────────────────────────

    @property
    def phase(self) -> SessionPhase:
        return self.session.phase if self.session else SessionPhase.IDLE

    def _new_session(self) -> ExamSession:
        self.save_error = None
        session = ExamSession(
            self.student_id,
            timer_factory=self.timer_factory,
            on_terminate=lambda record: self._on_terminate(session, record),
        )
        return session

    def _require_session(self) -> ExamSession:
        if self.session is None:
            raise PreconditionFailure("선택된 시험이 없습니다.", phase=SessionPhase.IDLE.value)
        return self.session

    def select_exam(self, exam_id: str) -> Exam:
        """시험 선택 → 안내 화면. 진행 중이거나 제출 중인 세션이 있으면 거부."""
        if self.phase in (SessionPhase.IN_PROGRESS, SessionPhase.SUBMITTING):
            raise PreconditionFailure(
                "이미 진행 중인 시험이 있습니다.",
                phase=self.phase.value, exam_id=self.session.exam_id,
            )
        exam = self.catalog.get_exam(exam_id)
        if self.session is None or self.session.phase.is_terminal:
            self.session = self._new_session()
        self.session.select_exam(exam)
        return exam

    def begin(self) -> SessionView:
        session = self._require_session()
        if session.phase is not SessionPhase.INSTRUCTIONS:
            raise PreconditionFailure(
                "안내 화면에서만 시험을 시작할 수 있습니다.",
                phase=session.phase.value, exam_id=session.exam_id,
            )

        exam = session.exam
        try:
            questions = self.catalog.get_question_bank(exam.question_bank_ref)
        except LoadError as e:
            e.phase, e.exam_id = session.phase.value, exam.id
            logger.warning(f"문제 은행 로드 실패: exam={exam.id}: {e.message}")
            raise
        except Exception as e:
            logger.error(f"문제 은행 로드 중 예상치 못한 오류: exam={exam.id}: {type(e).__name__}: {e}")
            raise LoadError(
                "문제를 불러오지 못했습니다. 잠시 후 다시 시도해 주세요.",
                phase=session.phase.value, exam_id=exam.id,
            ) from e

        session.begin(questions)
        return session.view()

    def cancel(self) -> SessionView:
        if self.session is not None:
            self.session.cancel()
        return self.view()

    def reset(self) -> None:
        """종료된 세션 정리 → IDLE."""
        if self.session is not None and not self.session.phase.is_terminal \
                and self.session.phase is not SessionPhase.INSTRUCTIONS:
            raise PreconditionFailure(
                "종료되지 않은 시험은 초기화할 수 없습니다.",
                phase=self.session.phase.value, exam_id=self.session.exam_id,
            )
        self.session = None
        self.save_error = None

    def shutdown(self) -> None:
        """서버 종료/세션 만료 시 호출. 진행 중인 시험은 중단 처리하여 타이머를 해제한다."""
        if self.session is None:
            return
        if self.session.phase in (SessionPhase.INSTRUCTIONS, SessionPhase.IN_PROGRESS):
            self.session.cancel()
        elif self.session.phase is SessionPhase.SUBMITTING and self.save_error:
            record = self.session.record
            logger.error(
                f"저장되지 않은 응시 기록 폐기: student={record.student_id} exam={record.exam_id} "
                f"record={record.model_dump_json()}"
            )

    # ── 응시 중 조작 ─────────────────────────────────────────────────────────

    def select_answer(self, index: int, option: str) -> None:
        self._require_session().select_answer(index, option)

    def clear_answer(self, index: int) -> None:
        self._require_session().clear_answer(index)

    def navigate(self, direction: int) -> int:
        return self._require_session().navigate(direction)

    def go_to(self, index: int) -> int:
        return self._require_session().go_to(index)

    def question(self, index: int) -> dict:
        return self._require_session().question(index)

    # ── 제출 / 저장 ─────────────────────────────────────────────────────────

    def submit(self) -> GradeResult:
        """
        수동 제출 후 채점 결과 반환.

        타이머가 먼저 종료시킨 경우에도 그 결과를 반환한다 (저장은 한 번만).
        타이머 쪽 저장이 진행 중이면 끝날 때까지 기다린다.
        Raises:
            WriteError: 재시도 후에도 응시 기록 저장 실패 (result 포함).
        """
        session = self._require_session()
        record = session.submit()
        if session.result is None:
            raise PreconditionFailure(
                "제출할 수 있는 시험이 없습니다.", phase=session.phase.value, exam_id=session.exam_id,
            )
        if record is None:
            self._save_done.wait()
            if session.phase is SessionPhase.SUBMITTING and self.save_error:
                raise WriteError(
                    "응시 기록을 저장하지 못했습니다. 채점 결과를 확인하고 저장을 다시 시도해 주세요.",
                    phase=session.phase.value,
                    exam_id=session.exam_id,
                    result=session.result,
                )
        return session.result

    def wait_saved(self, timeout: Optional[float] = None) -> bool:
        """타이머 경로의 백그라운드 저장이 끝날 때까지 대기. 시간 초과 시 False."""
        return self._save_done.wait(timeout)

    def retry_save(self) -> GradeResult:
        """저장 실패 후 이미 계산된 기록으로 다시 저장."""
        session = self._require_session()
        if session.phase is not SessionPhase.SUBMITTING or session.record is None:
            raise PreconditionFailure(
                "저장을 재시도할 응시 기록이 없습니다.", phase=session.phase.value, exam_id=session.exam_id,
            )
        self._persist(session, session.record)
        return session.result

    def _on_terminate(self, session: ExamSession, record: AttemptRecord) -> None:
        # 종료 전이에 성공한 쪽에서만 호출된다
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # 수동 제출 (워커 스레드): 호출자에게 WriteError 전달
            self._persist(session, record)
            return

        # 타이머 만료 (이벤트 루프): 저장/백오프로 루프를 막지 않도록 executor에서 실행
        self._save_done.clear()
        loop.run_in_executor(None, self._persist_in_background, session, record)

    def _persist_in_background(self, session: ExamSession, record: AttemptRecord) -> None:
        try:
            self._persist(session, record)
        except WriteError:
            # 실패는 _persist에서 기록되고 save_error로 화면에 노출된다
            pass
        finally:
            self._save_done.set()

    def _persist(self, session: ExamSession, record: AttemptRecord) -> None:
        """응시 기록 저장 + 지수 백오프 재시도."""
        with self._save_lock:
            if session.phase is not SessionPhase.SUBMITTING:
                return

            last_exception: Optional[CBTError] = None
            for attempt in range(1, self.save_retries + 1):
                try:
                    attempt_id = self.history.save_attempt(record)
                except WriteError as e:
                    last_exception = e
                    if attempt < self.save_retries:
                        wait = self.retry_delay * (2 ** (attempt - 1))
                        logger.warning(f"응시 기록 저장 실패, {wait:.1f}초 후 재시도 ({attempt}/{self.save_retries})")
                        time.sleep(wait)
                    continue

                session.mark_persisted(attempt_id)
                self.save_error = None
                logger.info(f"응시 기록 저장 완료: attempt={attempt_id} exam={record.exam_id}")
                return

            self.save_error = last_exception.message
            logger.error(
                f"응시 기록 최종 저장 실패: student={record.student_id} exam={record.exam_id} "
                f"score={record.score}/{record.total_questions}: {last_exception.message}"
            )
            raise WriteError(
                "응시 기록을 저장하지 못했습니다. 채점 결과를 확인하고 저장을 다시 시도해 주세요.",
                phase=session.phase.value,
                exam_id=record.exam_id,
                result=session.result,
            ) from last_exception

    # ── 화면용 조회 ─────────────────────────────────────────────────────────

    def view(self) -> SessionView:
        if self.session is None:
            return SessionView()
        v = self.session.view()
        if self.save_error:
            v = v.model_copy(update={"save_error": self.save_error})
        return v

    def results(self) -> dict:
        """결과 화면용: 채점 결과 + 통계 + 오답 노트."""
        session = self._require_session()
        if session.result is None:
            raise PreconditionFailure(
                "시험이 아직 제출되지 않았습니다.", phase=session.phase.value, exam_id=session.exam_id,
            )
        answers = session.sheet.answers
        incorrect = exam_service.get_incorrect_questions(session.questions, answers)
        return {
            **session.result.model_dump(),
            **{f"{k}_count": v for k, v in exam_service.summarize(session.questions, answers).items()
               if k != "total"},
            "phase": session.phase.value,
            "attempt_id": session.attempt_id,
            "trigger": session.trigger,
            "incorrect_questions": [
                {**q.public_dict(), "correct_answer": q.correct_answer, "user_answer": answers.get(q.index)}
                for q in incorrect
            ],
        }
