import os
import logging
import logging.config
from pathlib import Path

# Base Paths
APP_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = APP_DIR.parent

# Resources
WORK_DIR = Path(os.getenv("WORK_DIR", str(PROJECT_ROOT / "work")))  # per-job scratch directories

# Logging Setup
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_FILE_PATH = os.getenv(
    "LOG_FILE_PATH",
    str((PROJECT_ROOT / "logs" / "reelforge.log").resolve()),
)

LOG_DIR = Path(LOG_FILE_PATH).parent
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": LOG_FORMAT,
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "filename": LOG_FILE_PATH,
            "maxBytes": 5 * 1024 * 1024,  # 5 MB
            "backupCount": 5,
            "encoding": "utf8",
        },
    },
    "loggers": {
        "reelforge": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "uvicorn.error": {"level": "INFO"},
        "uvicorn.access": {"level": "INFO"},
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
}

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger("reelforge")

WORK_DIR.mkdir(parents=True, exist_ok=True)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Cloudflare R2 (S3-compatible object storage)
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID", "")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "")
R2_ENDPOINT_URL = os.getenv(
    "R2_ENDPOINT_URL",
    f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com" if R2_ACCOUNT_ID else "",
)
R2_PUBLIC_BASE_URL = os.getenv("R2_PUBLIC_BASE_URL", "").rstrip("/")

# Firestore job and clip metadata
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "")
FIREBASE_CREDENTIALS_PATH = os.getenv("FIREBASE_CREDENTIALS_PATH", "")

# AI services
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "whisper-1")
DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", "en")

CORS_ORIGINS = _split_csv(
    os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000")
)

# Environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"
DEBUG = not IS_PRODUCTION

# -----------------------------------------------------------------------------
# Pipeline Configuration
# -----------------------------------------------------------------------------

# Transcription
TRANSCRIBE_CHUNK_SECONDS = int(os.getenv("TRANSCRIBE_CHUNK_SECONDS", "300"))
TRANSCRIBE_BATCH_SIZE = int(os.getenv("TRANSCRIBE_BATCH_SIZE", "4"))

# Rendering
RENDER_BATCH_SIZE = int(os.getenv("RENDER_BATCH_SIZE", "4"))
RENDER_PRESET = os.getenv("RENDER_PRESET", "superfast")
RERENDER_TIMEOUT_SECONDS = int(os.getenv("RERENDER_TIMEOUT_SECONDS", "600"))

# Stage retries for transient failures (rate limits, network)
STAGE_MAX_ATTEMPTS = int(os.getenv("STAGE_MAX_ATTEMPTS", "3"))
STAGE_RETRY_BACKOFF_SECONDS = float(os.getenv("STAGE_RETRY_BACKOFF_SECONDS", "5"))

# Clip selection defaults
DEFAULT_CLIP_COUNT = 5
DEFAULT_MIN_DURATION = 30.0
DEFAULT_MAX_DURATION = 120.0
DEFAULT_TARGET_DURATION = 60.0
MAX_CLIP_COUNT = 10
MAX_CLIP_DURATION = 600.0

# Cache TTLs
REPROCESS_TTL_SECONDS = int(os.getenv("REPROCESS_TTL_SECONDS", str(30 * 24 * 3600)))  # 30 days
SUBTITLE_OVERRIDE_TTL_SECONDS = int(
    os.getenv("SUBTITLE_OVERRIDE_TTL_SECONDS", str(7 * 24 * 3600))
)  # 7 days

# Progress windows (start, end) per stage
PROGRESS_INGEST = (0, 15)
PROGRESS_TRANSCRIBE = (20, 45)
PROGRESS_SCENES = (50, 60)
PROGRESS_RENDER = (65, 85)
PROGRESS_FINALIZE = (87, 89)
PROGRESS_EXPORT = (90, 98)
PROGRESS_COMPLETE = 100
