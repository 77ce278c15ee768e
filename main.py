"""
main.py — CBT 시험 세션 API 서버 진입점
"""

import logging
import sys

from config import DEFAULT_HOST, DEFAULT_PORT, LOG_FILE, LOG_LEVEL

# ── 로깅 설정 ────────────────────────────────────────────────────────────────

def _setup_logging() -> None:
    try:
        logging.basicConfig(
            level=LOG_LEVEL,
            format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            handlers=[
                logging.FileHandler(LOG_FILE, encoding='utf-8'),
                logging.StreamHandler(sys.stdout)
            ]
        )
    except PermissionError:
        # 로그 파일 점유 시 콘솔 출력만 사용
        logging.basicConfig(level=LOG_LEVEL)


logger = logging.getLogger(__name__)

# ── 메인 실행 ────────────────────────────────────────────────────────────────

def main() -> None:
    _setup_logging()
    import uvicorn
    from api.app import create_app

    logger.info("=== CBT Exam Session Server Started ===")
    logger.info(f"Uvicorn 서버 시작 - http://{DEFAULT_HOST}:{DEFAULT_PORT}")
    try:
        uvicorn.run(create_app(), host=DEFAULT_HOST, port=DEFAULT_PORT, log_level="info")
    except KeyboardInterrupt:
        logger.info("사용자에 의해 종료되었습니다.")


if __name__ == "__main__":
    main()
