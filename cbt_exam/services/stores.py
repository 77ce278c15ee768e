"""
services/stores.py

외부 저장소 인터페이스.

  CatalogStore : 시험 목록 / 시험 정보 / 문제 은행 조회
  HistoryStore : 응시 기록 저장 / 학생별 응시 기록 조회

세션 컨트롤러는 이 인터페이스에만 의존한다. 구현은 memory_store, mongo_store 참고.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from cbt_exam.models.attempt_model import AttemptRecord
from cbt_exam.models.exam_model import Exam
from cbt_exam.models.question_model import Question


class CatalogStore(ABC):

    @abstractmethod
    def list_exams(self, course_id: Optional[str] = None) -> List[Exam]:
        """시험 목록. course_id가 없으면 전체."""

    @abstractmethod
    def get_exam(self, exam_id: str) -> Exam:
        """시험 한 개. 없으면 NotFound."""

    @abstractmethod
    def get_question_bank(self, ref: str) -> List[Question]:
        """과정(또는 시험) 단위 문제 은행. 없으면 NotFound, 조회 실패는 LoadError."""


class HistoryStore(ABC):

    @abstractmethod
    def save_attempt(self, record: AttemptRecord) -> str:
        """응시 기록 저장 후 ID 반환. 실패하면 WriteError."""

    @abstractmethod
    def list_attempts(self, student_id: str) -> List[AttemptRecord]:
        """학생의 응시 기록 (최근 순)."""
