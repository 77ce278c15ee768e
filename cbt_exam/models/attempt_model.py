"""
models/attempt_model.py

채점 결과와 저장용 응시 기록 모델. 둘 다 생성 후 변경 불가(frozen).
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cbt_exam.models.question_model import OPTION_LABELS

TRIGGER_SUBMIT = "submit"
TRIGGER_TIMEOUT = "timeout"


def _check_score(score: int, total: int) -> None:
    if score > total:
        raise ValueError(f"점수({score})가 전체 문항 수({total})를 넘을 수 없습니다.")


class GradeResult(BaseModel):
    """채점 결과."""
    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, description="정답 수")
    total_questions: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)
    passed: bool
    incorrect_indexes: List[int] = Field(
        default_factory=list,
        description="오답 노트용 문제 위치 (미응답 포함)"
    )

    @model_validator(mode='after')
    def validate_bounds(self) -> 'GradeResult':
        _check_score(self.score, self.total_questions)
        return self


class AttemptRecord(BaseModel):
    """
    응시 기록. 종료된 세션마다 정확히 하나 생성되어 기록 저장소로 전달된다.

    answers에는 응답한 문제만 들어 있다. 키가 없으면 미응답.
    """
    model_config = ConfigDict(frozen=True)

    exam_id: str
    student_id: str = Field(..., min_length=1)
    course_id: Optional[str] = None
    answers: Dict[int, str] = Field(default_factory=dict)
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)
    passed: bool
    started_at: datetime
    completed_at: datetime
    trigger: str = Field(TRIGGER_SUBMIT, pattern=f"^({TRIGGER_SUBMIT}|{TRIGGER_TIMEOUT})$")

    @model_validator(mode='after')
    def validate_record(self) -> 'AttemptRecord':
        _check_score(self.score, self.total_questions)
        for index, option in self.answers.items():
            if not 0 <= index < self.total_questions:
                raise ValueError(f"답안 위치 {index}이(가) 범위를 벗어났습니다.")
            if option not in OPTION_LABELS:
                raise ValueError(f"허용되지 않는 보기 라벨: {option!r}")
        if self.completed_at < self.started_at:
            raise ValueError("종료 시각이 시작 시각보다 빠를 수 없습니다.")
        return self
