"""
api/app.py — FastAPI 앱 인스턴스 + 저장소 구성 + 세션 레지스트리 + 오류 응답 변환
"""

import logging
import threading
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from api.routes import router
from api.sample_exams import build_sample_catalog
from api.session import SessionRegistry
from cbt_exam.errors import CBTError, InvalidInput, LoadError, NotFound, PreconditionFailure, WriteError
from cbt_exam.services.countdown_timer import CountdownTimer
from cbt_exam.services.memory_store import InMemoryHistoryStore
from cbt_exam.services.session_controller import SessionController
from cbt_exam.services.stores import CatalogStore, HistoryStore

logger = logging.getLogger(__name__)

# 하위 클래스를 먼저 검사 (NotFound는 LoadError의 하위)
_ERROR_STATUS = (
    (NotFound, 404),
    (LoadError, 503),
    (InvalidInput, 422),
    (PreconditionFailure, 409),
    (WriteError, 502),
)


def _build_stores():
    if config.MONGODB_URI:
        from cbt_exam.services.mongo_store import MongoCatalogStore, MongoHistoryStore, connect
        db = connect(config.MONGODB_URI, config.MONGODB_DB)
        return MongoCatalogStore(db), MongoHistoryStore(db)

    logger.info("MONGODB_URI 미설정: 인메모리 데모 카탈로그 사용")
    return build_sample_catalog(), InMemoryHistoryStore()


def create_app(
    catalog: Optional[CatalogStore] = None,
    history: Optional[HistoryStore] = None,
    tick_interval: float = config.TICK_INTERVAL,
    save_retries: int = config.SAVE_RETRIES,
    retry_delay: float = config.SAVE_RETRY_DELAY,
    cleanup_interval: float = config.CLEANUP_INTERVAL,
) -> FastAPI:
    if catalog is None or history is None:
        default_catalog, default_history = _build_stores()
        catalog = catalog or default_catalog
        history = history or default_history

    timer_factory = partial(CountdownTimer, interval=tick_interval)
    registry = SessionRegistry(
        lambda student_id: SessionController(
            student_id,
            catalog,
            history,
            timer_factory=timer_factory,
            save_retries=save_retries,
            retry_delay=retry_delay,
        )
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop = threading.Event()

        # 만료 세션 주기적 정리
        def _cleanup_loop():
            while not stop.wait(cleanup_interval):
                removed = registry.cleanup_expired()
                if removed:
                    logger.info(f"만료 세션 {removed}개 정리")

        t = threading.Thread(target=_cleanup_loop, daemon=True)
        t.start()
        try:
            yield
        finally:
            stop.set()
            registry.shutdown()

    app = FastAPI(title="CBT Exam Session", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.registry = registry
    app.state.catalog = catalog
    app.state.history = history

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CBTError)
    async def cbt_error_handler(request: Request, exc: CBTError):
        status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} → {status}: {exc.message}")
        return JSONResponse(status_code=status, content=exc.to_dict())

    app.include_router(router)
    return app
