"""
services/mongo_store.py

MongoDB 저장소 구현.

컬렉션:
  exams         시험 카탈로그  {_id, title, courseId, duration, questionCount, passPercentage}
  questions     문제 은행      {courseId | examId, question, options, correctAnswer, order}
  examAttempts  응시 기록      {examId, studentId, courseId, answers, score, totalQuestions,
                                percentage, passed, startedAt, completedAt, trigger}

PyMongoError는 조회 시 LoadError, 저장 시 WriteError로 변환하여 호출자에게 전달한다.
"""

import logging
from datetime import timezone
from typing import List, Optional

from bson import ObjectId
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from cbt_exam.errors import LoadError, NotFound, WriteError
from cbt_exam.models.attempt_model import AttemptRecord
from cbt_exam.models.exam_model import Exam
from cbt_exam.models.question_model import Question, options_from_list
from cbt_exam.services.stores import CatalogStore, HistoryStore

logger = logging.getLogger(__name__)


def connect(uri: str, db_name: str):
    """
    MongoDB 연결 후 데이터베이스 핸들 반환.

    Raises:
        LoadError: 연결(ping) 실패.
    """
    try:
        client = MongoClient(uri)
        client.admin.command("ping")
    except ConnectionFailure as e:
        logger.error(f"MongoDB 연결 실패: {e}")
        raise LoadError(f"MongoDB 연결 실패: {e}") from e
    logger.info(f"MongoDB 연결 성공 (db={db_name})")
    return client[db_name]


def _id_filter(doc_id: str) -> dict:
    return {"_id": ObjectId(doc_id) if ObjectId.is_valid(doc_id) else doc_id}


# ── 문서 ↔ 모델 변환 ─────────────────────────────────────────────────────────

def exam_from_document(doc: dict) -> Exam:
    return Exam(
        id=str(doc["_id"]),
        title=doc.get("title") or doc.get("name") or "Untitled Exam",
        course_id=doc.get("courseId") or doc.get("course"),
        duration_minutes=doc.get("duration"),
        question_count=doc.get("questionCount") or doc.get("totalQuestions") or 0,
        pass_percentage=doc.get("passPercentage"),
    )


def question_from_document(index: int, doc: dict) -> Question:
    options = doc.get("options") or {}
    if isinstance(options, list):
        options = options_from_list(options)
    return Question(
        index=index,
        prompt=doc.get("question") or doc.get("prompt") or doc.get("text") or "",
        options=options,
        correct_answer=doc.get("correctAnswer") or "",
    )


def attempt_to_document(record: AttemptRecord) -> dict:
    return {
        "examId": record.exam_id,
        "studentId": record.student_id,
        "courseId": record.course_id,
        # MongoDB 문서 키는 문자열만 허용
        "answers": {str(k): v for k, v in record.answers.items()},
        "score": record.score,
        "totalQuestions": record.total_questions,
        "percentage": record.percentage,
        "passed": record.passed,
        "startedAt": record.started_at,
        "completedAt": record.completed_at,
        "trigger": record.trigger,
    }


def attempt_from_document(doc: dict) -> AttemptRecord:
    def _aware(dt):
        # pymongo는 기본적으로 naive UTC datetime을 반환
        return dt.replace(tzinfo=timezone.utc) if dt is not None and dt.tzinfo is None else dt

    return AttemptRecord(
        exam_id=str(doc.get("examId") or ""),
        student_id=doc["studentId"],
        course_id=doc.get("courseId"),
        answers={int(k): v for k, v in (doc.get("answers") or {}).items()},
        score=doc.get("score", 0),
        total_questions=doc.get("totalQuestions", 0),
        percentage=doc.get("percentage", 0),
        passed=bool(doc.get("passed", False)),
        started_at=_aware(doc["startedAt"]),
        completed_at=_aware(doc["completedAt"]),
        trigger=doc.get("trigger") or "submit",
    )


# ── 저장소 ───────────────────────────────────────────────────────────────────

class MongoCatalogStore(CatalogStore):

    def __init__(self, db):
        self.exams_collection = db["exams"]
        self.questions_collection = db["questions"]

    def list_exams(self, course_id: Optional[str] = None) -> List[Exam]:
        query = {"courseId": course_id} if course_id else {}
        try:
            docs = list(self.exams_collection.find(query))
        except PyMongoError as e:
            logger.error(f"시험 목록 조회 실패: {e}")
            raise LoadError(f"시험 목록 조회 실패: {e}") from e

        exams = []
        for doc in docs:
            try:
                exams.append(exam_from_document(doc))
            except ValidationError as e:
                logger.warning(f"시험 문서 {doc.get('_id')} 변환 실패: {e}")
        return exams

    def get_exam(self, exam_id: str) -> Exam:
        try:
            doc = self.exams_collection.find_one(_id_filter(exam_id))
        except PyMongoError as e:
            logger.error(f"시험 조회 실패 ({exam_id}): {e}")
            raise LoadError(f"시험 조회 실패: {e}", exam_id=exam_id) from e
        if not doc:
            raise NotFound(f"시험을 찾을 수 없습니다: {exam_id}", exam_id=exam_id)
        try:
            return exam_from_document(doc)
        except ValidationError as e:
            raise LoadError(f"시험 정보 형식 오류: {e}", exam_id=exam_id) from e

    def get_question_bank(self, ref: str) -> List[Question]:
        query = {"$or": [{"courseId": ref}, {"examId": ref}]}
        try:
            docs = list(
                self.questions_collection.find(query).sort([("order", ASCENDING), ("_id", ASCENDING)])
            )
        except PyMongoError as e:
            logger.error(f"문제 은행 조회 실패 ({ref}): {e}")
            raise LoadError(f"문제 은행 조회 실패: {e}") from e
        if not docs:
            raise NotFound(f"문제 은행을 찾을 수 없습니다: {ref}")

        try:
            questions = [question_from_document(i, doc) for i, doc in enumerate(docs)]
        except (ValidationError, ValueError) as e:
            raise LoadError(f"문제 형식 오류: {e}") from e

        logger.info(f"문제 은행 로드: {ref}: {len(questions)}문항")
        return questions


class MongoHistoryStore(HistoryStore):

    def __init__(self, db):
        self.attempts_collection = db["examAttempts"]

    def save_attempt(self, record: AttemptRecord) -> str:
        try:
            result = self.attempts_collection.insert_one(attempt_to_document(record))
        except PyMongoError as e:
            raise WriteError(f"응시 기록 저장 실패: {e}", exam_id=record.exam_id) from e
        return str(result.inserted_id)

    def list_attempts(self, student_id: str) -> List[AttemptRecord]:
        try:
            docs = list(
                self.attempts_collection.find({"studentId": student_id}).sort("completedAt", DESCENDING)
            )
        except PyMongoError as e:
            logger.error(f"응시 기록 조회 실패 ({student_id}): {e}")
            raise LoadError(f"응시 기록 조회 실패: {e}") from e

        records = []
        for doc in docs:
            try:
                records.append(attempt_from_document(doc))
            except (ValidationError, KeyError) as e:
                logger.warning(f"응시 기록 {doc.get('_id')} 변환 실패: {e}")
        return records
