"""
models/answer_sheet.py

OMR 답안지 모델.

  - key: 문제 위치 (0-based), value: 선택한 보기 라벨 (A~D)
  - 키가 없으면 미응답. 저장되는 응시 기록도 같은 규칙을 따른다
    (미응답을 별도 표식으로 기록하지 않음).
  - 진행 중인 세션만 소유하며 세션 간 공유하지 않는다.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from cbt_exam.errors import InvalidInput
from cbt_exam.models.question_model import OPTION_LABELS


class AnswerSheet(BaseModel):
    question_count: int = Field(..., ge=0, description="문제 은행 크기")
    answers: Dict[int, str] = Field(
        default_factory=dict,
        description="답안. key: 문제 위치, value: 보기 라벨"
    )

    @model_validator(mode='after')
    def validate_answers(self) -> 'AnswerSheet':
        for index, option in self.answers.items():
            if not 0 <= index < self.question_count:
                raise ValueError(f"문제 위치 {index}이(가) 범위를 벗어났습니다. (0~{self.question_count - 1})")
            if option not in OPTION_LABELS:
                raise ValueError(f"허용되지 않는 보기 라벨: {option!r}")
        return self

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < self.question_count:
            raise InvalidInput(f"문제 위치 {index!r}이(가) 범위를 벗어났습니다. (0~{self.question_count - 1})")

    def select(self, index: int, option: str) -> None:
        """답안 기록. 같은 문제를 다시 선택하면 덮어쓴다."""
        self._check_index(index)
        if option not in OPTION_LABELS:
            raise InvalidInput(f"허용되지 않는 보기 라벨: {option!r}")
        self.answers[index] = option

    def clear(self, index: int) -> None:
        self._check_index(index)
        self.answers.pop(index, None)

    def get(self, index: int) -> Optional[str]:
        return self.answers.get(index)

    def is_answered(self, index: int) -> bool:
        return index in self.answers

    @property
    def answered_count(self) -> int:
        return len(self.answers)

    def unanswered_indexes(self) -> List[int]:
        return [i for i in range(self.question_count) if i not in self.answers]

    def snapshot(self) -> Dict[int, str]:
        """저장용 복사본."""
        return dict(sorted(self.answers.items()))
