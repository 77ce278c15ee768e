"""
api/routes.py — FastAPI 엔드포인트

학생 식별은 X-Student-Id 헤더로 명시적으로 전달받는다.
세션 오류(CBTError)는 api/app.py의 예외 핸들러에서 HTTP 상태 코드로 변환.
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel

from cbt_exam.services.countdown_timer import format_remaining
from cbt_exam.services.session_controller import SessionController

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class AnswerBody(BaseModel):
    index: int
    option: str = ""

class NavigateBody(BaseModel):
    direction: Optional[int] = None
    index: Optional[int] = None


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def get_controller(
    request: Request,
    x_student_id: Optional[str] = Header(None),
) -> SessionController:
    """요청 헤더의 학생 ID로 컨트롤러 조회. 식별 정보가 없으면 401."""
    student_id = (x_student_id or "").strip()
    if not student_id:
        raise HTTPException(status_code=401, detail="학생 식별 정보(X-Student-Id)가 없습니다.")
    return request.app.state.registry.get_or_create(student_id)


def _view(controller: SessionController) -> dict:
    d = controller.view().model_dump(mode="json")
    d["time_display"] = format_remaining(d["time_remaining"])
    return d


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"ok": True}


@router.get("/api/exams")
async def list_exams(course_id: Optional[str] = None, controller: SessionController = Depends(get_controller)):
    exams = controller.list_exams(course_id)
    return {"exams": [e.model_dump(mode="json") for e in exams], "count": len(exams)}


@router.post("/api/exams/{exam_id}/select")
async def select_exam(exam_id: str, controller: SessionController = Depends(get_controller)):
    controller.select_exam(exam_id)
    return _view(controller)


@router.post("/api/session/begin")
async def begin_exam(controller: SessionController = Depends(get_controller)):
    # 타이머가 현재 이벤트 루프에 등록되므로 스레드로 넘기지 않는다
    controller.begin()
    return _view(controller)


@router.post("/api/session/cancel")
async def cancel_exam(controller: SessionController = Depends(get_controller)):
    controller.cancel()
    return _view(controller)


@router.get("/api/session")
async def get_session_view(controller: SessionController = Depends(get_controller)):
    return _view(controller)


@router.get("/api/session/question/{index}")
async def get_question(index: int, controller: SessionController = Depends(get_controller)):
    return controller.question(index)


@router.post("/api/session/answer")
async def save_answer(body: AnswerBody, controller: SessionController = Depends(get_controller)):
    if body.option:
        controller.select_answer(body.index, body.option.strip().upper())
    else:
        controller.clear_answer(body.index)
    view = controller.view()
    return {"ok": True, "answered_count": view.answered_count}


@router.post("/api/session/navigate")
async def navigate(body: NavigateBody, controller: SessionController = Depends(get_controller)):
    if body.direction is not None:
        idx = controller.navigate(body.direction)
    elif body.index is not None:
        idx = controller.go_to(body.index)
    else:
        raise HTTPException(status_code=422, detail="direction 또는 index가 필요합니다.")
    return {"index": idx, "ok": True}


@router.post("/api/session/submit")
async def submit_exam(controller: SessionController = Depends(get_controller)):
    # 저장 재시도(sleep)가 이벤트 루프를 막지 않도록 워커 스레드에서 실행
    result = await asyncio.to_thread(controller.submit)
    return {"result": result.model_dump(mode="json"), "phase": controller.phase.value, "ok": True}


@router.post("/api/session/retry-save")
async def retry_save(controller: SessionController = Depends(get_controller)):
    result = await asyncio.to_thread(controller.retry_save)
    return {"result": result.model_dump(mode="json"), "phase": controller.phase.value, "ok": True}


@router.post("/api/session/reset")
async def reset_session(controller: SessionController = Depends(get_controller)):
    controller.reset()
    return {"ok": True}


@router.get("/api/results")
async def get_results(controller: SessionController = Depends(get_controller)):
    return controller.results()


@router.get("/api/attempts")
async def list_attempts(controller: SessionController = Depends(get_controller)):
    records = controller.history_list()
    return {"attempts": [r.model_dump(mode="json") for r in records], "count": len(records)}
