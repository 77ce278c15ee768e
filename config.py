import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
LOG_FILE = os.getenv("CBT_LOG_FILE", os.path.join(BASE_DIR, "launch.log"))
LOG_LEVEL = os.getenv("CBT_LOG_LEVEL", "INFO")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# MongoDB 설정 (비어 있으면 인메모리 데모 카탈로그 사용)
MONGODB_URI = os.getenv("MONGODB_URI", "")
MONGODB_DB = os.getenv("MONGODB_DB", "cbt")

# 시험 세션 설정
TICK_INTERVAL = float(os.getenv("CBT_TICK_INTERVAL", "1.0"))  # 초
DEFAULT_DURATION_MINUTES = 10      # 시험 정의에 시간이 없을 때
DEFAULT_PASS_PERCENTAGE = 60       # 시험 정의에 합격 기준이 없을 때

# 응시 기록 저장 재시도
SAVE_RETRIES = int(os.getenv("CBT_SAVE_RETRIES", "3"))
SAVE_RETRY_DELAY = float(os.getenv("CBT_SAVE_RETRY_DELAY", "0.5"))  # 지수 백오프 기준값

# 학생별 세션 레지스트리
SESSION_TTL = 3600       # 1시간
CLEANUP_INTERVAL = 300   # 5분
