"""
services/exam_service.py

시험 채점 및 결과 분석 비즈니스 로직.
순수 Python 함수로 구성: 전역 상태 변경 없음, 같은 입력에 항상 같은 결과.
"""

from typing import Dict, List, Optional, Sequence

from config import DEFAULT_PASS_PERCENTAGE
from cbt_exam.models.answer_sheet import AnswerSheet
from cbt_exam.models.attempt_model import GradeResult
from cbt_exam.models.question_model import Question


def calculate_percentage(score: int, total: int) -> int:
    """
    정답 수를 백분율(정수)로 환산한다. 0.5는 올림 (round half up).

    부동소수점 오차를 피하기 위해 정수 연산으로 계산.
    total이 0이면 0 반환.
    """
    if total <= 0:
        return 0
    return (score * 200 + total) // (2 * total)


def is_passed(percentage: float, pass_score: Optional[float] = None) -> bool:
    """
    합격 여부를 반환한다.

    Args:
        percentage: calculate_percentage()가 반환한 백분율 (0 ~ 100).
        pass_score: 합격 기준 (%). None이면 DEFAULT_PASS_PERCENTAGE.

    Returns:
        percentage >= pass_score 이면 True, 아니면 False.
    """
    if pass_score is None:
        pass_score = DEFAULT_PASS_PERCENTAGE
    return percentage >= pass_score


def get_incorrect_questions(
    questions: Sequence[Question],
    answers: Dict[int, str],
) -> List[Question]:
    """
    오답 문제 리스트를 반환한다 (오답 노트용).

    오답 판정 기준:
    - 사용자가 선택한 답이 정답과 다른 경우
    - 사용자가 아예 응답하지 않은 경우 (미응답 포함)

    Returns:
        오답 Question 리스트. 원본 순서 유지.
    """
    return [q for i, q in enumerate(questions) if answers.get(i) != q.correct_answer]


def summarize(
    questions: Sequence[Question],
    answers: Dict[int, str],
) -> Dict[str, int]:
    """정답/오답/미응답 수 집계."""
    counts = {"total": len(questions), "correct": 0, "incorrect": 0, "unanswered": 0}
    for i, q in enumerate(questions):
        user_ans = answers.get(i)
        if user_ans is None:
            counts["unanswered"] += 1
        elif user_ans == q.correct_answer:
            counts["correct"] += 1
        else:
            counts["incorrect"] += 1
    return counts


def grade(
    sheet: AnswerSheet,
    questions: Sequence[Question],
    pass_percentage: Optional[int] = None,
) -> GradeResult:
    """
    답안지를 채점한다.

    정답 판정 기준: sheet.answers[i] == questions[i].correct_answer
    응답하지 않은 문제(키 없음)는 오답으로 처리.

    Args:
        sheet:           세션의 답안지.
        questions:       세션 시작 시 로드된 문제 은행 (위치 = index).
        pass_percentage: 시험 정의의 합격 기준. None이면 기본값.
    """
    answers = sheet.answers
    incorrect = [i for i, q in enumerate(questions) if answers.get(i) != q.correct_answer]
    total = len(questions)
    score = total - len(incorrect)
    percentage = calculate_percentage(score, total)

    return GradeResult(
        score=score,
        total_questions=total,
        percentage=percentage,
        passed=is_passed(percentage, pass_percentage),
        incorrect_indexes=incorrect,
    )
