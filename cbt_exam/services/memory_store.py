"""
services/memory_store.py

인메모리 저장소 구현: 테스트 및 MongoDB 없이 실행할 때 사용.
잠금으로 보호되므로 여러 스레드에서 호출해도 안전.
"""

import threading
import uuid
from typing import Dict, List, Optional

from cbt_exam.errors import NotFound
from cbt_exam.models.attempt_model import AttemptRecord
from cbt_exam.models.exam_model import Exam
from cbt_exam.models.question_model import Question
from cbt_exam.services.stores import CatalogStore, HistoryStore


class InMemoryCatalogStore(CatalogStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._exams: Dict[str, Exam] = {}
        self._banks: Dict[str, List[Question]] = {}

    def add_exam(self, exam: Exam, questions: Optional[List[Question]] = None) -> None:
        """시험 등록. questions가 있으면 exam.question_bank_ref 기준으로 문제 은행도 등록."""
        with self._lock:
            self._exams[exam.id] = exam
            if questions is not None:
                self._banks[exam.question_bank_ref] = list(questions)

    def list_exams(self, course_id: Optional[str] = None) -> List[Exam]:
        with self._lock:
            exams = list(self._exams.values())
        if course_id:
            exams = [e for e in exams if e.course_id == course_id]
        return exams

    def get_exam(self, exam_id: str) -> Exam:
        with self._lock:
            exam = self._exams.get(exam_id)
        if exam is None:
            raise NotFound(f"시험을 찾을 수 없습니다: {exam_id}", exam_id=exam_id)
        return exam

    def get_question_bank(self, ref: str) -> List[Question]:
        with self._lock:
            bank = self._banks.get(ref)
        if bank is None:
            raise NotFound(f"문제 은행을 찾을 수 없습니다: {ref}")
        return list(bank)


class InMemoryHistoryStore(HistoryStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: Dict[str, AttemptRecord] = {}

    def save_attempt(self, record: AttemptRecord) -> str:
        attempt_id = uuid.uuid4().hex
        with self._lock:
            self._attempts[attempt_id] = record
        return attempt_id

    def list_attempts(self, student_id: str) -> List[AttemptRecord]:
        with self._lock:
            records = [r for r in self._attempts.values() if r.student_id == student_id]
        return sorted(records, key=lambda r: r.completed_at, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
