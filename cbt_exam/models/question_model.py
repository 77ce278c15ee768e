from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

OPTION_LABELS = ("A", "B", "C", "D")


class Question(BaseModel):
    """
    CBT 객관식 문제 모델
    Pydantic v2 적용: 세션 시작 시 한 번 로드된 뒤 변경 불가(frozen).
    """
    model_config = ConfigDict(frozen=True)

    index: int = Field(
        ...,
        ge=0,
        description="문제 위치 (0-based). 세션 동안 고정"
    )
    prompt: str = Field(
        ...,
        min_length=1,
        description="발문/문제 내용"
    )
    options: Dict[str, str] = Field(
        ...,
        description="보기. key: 보기 라벨(A~D), value: 보기 내용"
    )
    correct_answer: str = Field(
        ...,
        description="정답 보기 라벨 (A~D)"
    )

    @field_validator('options')
    @classmethod
    def validate_options(cls, v: Dict[str, str]) -> Dict[str, str]:
        """
        검증 로직 1: 보기는 2~4개, 라벨은 A~D만 허용한다.
        """
        if not 2 <= len(v) <= len(OPTION_LABELS):
            raise ValueError(f"보기(options)는 2~4개여야 합니다. (현재 {len(v)}개)")
        unknown = [label for label in v if label not in OPTION_LABELS]
        if unknown:
            raise ValueError(f"허용되지 않는 보기 라벨: {unknown}")
        return v

    @field_validator('correct_answer', mode='before')
    @classmethod
    def normalize_answer(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @model_validator(mode='after')
    def validate_answer_in_options(self) -> 'Question':
        """
        검증 로직 2: 정답 라벨은 반드시 보기 라벨 중 하나여야 한다.
        """
        if self.correct_answer not in self.options:
            raise ValueError(
                f"정답('{self.correct_answer}')이 보기 라벨({list(self.options)})에 존재하지 않습니다."
            )
        return self

    def public_dict(self) -> dict:
        """정답을 제외한 응시 화면용 표현."""
        return {
            "index": self.index,
            "prompt": self.prompt,
            "options": dict(self.options),
        }


def options_from_list(items: List[str]) -> Dict[str, str]:
    """리스트 형태의 보기를 A, B, C, D 순서로 라벨링한다."""
    if len(items) > len(OPTION_LABELS):
        raise ValueError(f"보기는 최대 {len(OPTION_LABELS)}개까지 허용됩니다. (현재 {len(items)}개)")
    return {label: text for label, text in zip(OPTION_LABELS, items)}


def validate_bank(questions: List[Question]) -> Optional[str]:
    """
    문제 은행 검증. 문제가 없거나 index가 0..n-1 순서가 아니면 사유 문자열을, 정상이면 None을 반환.
    """
    if not questions:
        return "문제 은행이 비어 있습니다."
    for position, q in enumerate(questions):
        if q.index != position:
            return f"문제 순서가 올바르지 않습니다. (위치 {position}, index {q.index})"
    return None
