from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import DEFAULT_DURATION_MINUTES


class Exam(BaseModel):
    """
    시험 카탈로그 항목. 세션용으로 조회된 뒤에는 변경하지 않는다.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="시험 ID")
    title: str = Field(..., description="시험 제목")
    course_id: Optional[str] = Field(None, description="소속 과정 ID")
    duration_minutes: int = Field(
        DEFAULT_DURATION_MINUTES,
        gt=0,
        description="제한 시간 (분). 값이 없거나 0이면 기본값 적용"
    )
    question_count: int = Field(0, ge=0, description="선언된 문항 수")
    pass_percentage: Optional[int] = Field(
        None,
        ge=0,
        le=100,
        description="합격 기준 (%). 없으면 config.DEFAULT_PASS_PERCENTAGE"
    )

    @field_validator('duration_minutes', mode='before')
    @classmethod
    def default_duration(cls, v):
        return v or DEFAULT_DURATION_MINUTES

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def question_bank_ref(self) -> str:
        # 문제 은행은 과정 단위로 관리된다. 과정이 없는 시험은 시험 ID로 조회.
        return self.course_id or self.id
