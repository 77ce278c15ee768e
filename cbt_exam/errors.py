"""
errors.py

CBT 세션 오류 분류.

  LoadError            문제 은행/시험 정보 로드 실패 (복구 가능: 안내 화면으로 복귀)
  NotFound             요청한 시험/문제 은행이 존재하지 않음 (LoadError 하위)
  InvalidInput         범위를 벗어난 문제 번호나 보기: 상태 변경 없이 거부
  WriteError           응시 기록 저장 실패: 채점 결과(result)를 함께 보관
  PreconditionFailure  학생 식별 정보 없음, 또는 현재 단계에서 허용되지 않는 호출
"""

from typing import Any, Optional


class CBTError(Exception):
    """모든 세션 오류의 기반 클래스. 보고/재시도를 위해 단계와 시험 ID를 함께 담는다."""

    def __init__(self, message: str, phase: Optional[str] = None, exam_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.exam_id = exam_id

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "error": type(self).__name__,
            "phase": self.phase,
            "exam_id": self.exam_id,
        }


class LoadError(CBTError):
    pass


class NotFound(LoadError):
    pass


class InvalidInput(CBTError):
    pass


class PreconditionFailure(CBTError):
    pass


class WriteError(CBTError):
    """저장 실패. 이미 계산된 채점 결과를 잃지 않도록 result에 보관한다."""

    def __init__(self, message: str, phase: Optional[str] = None,
                 exam_id: Optional[str] = None, result: Any = None):
        super().__init__(message, phase=phase, exam_id=exam_id)
        self.result = result

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.result is not None:
            d["result"] = self.result.model_dump() if hasattr(self.result, "model_dump") else self.result
        return d
