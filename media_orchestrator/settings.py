from pathlib import Path
import os
from dotenv import load_dotenv
from django.core.exceptions import ImproperlyConfigured

# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def env(name: str, default=None, *, required: bool = False):
    val = os.getenv(name, default)
    if required and (val is None or (isinstance(val, str) and val.strip() == "")):
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val

def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}

def env_int(name: str, default: int) -> int:
    raw = env(name, str(default))
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Keep hosts explicit by default
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost,testserver").split(",") if h.strip()]

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",

    # Third-party
    "rest_framework",

    # Local
    "media_jobs",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "media_orchestrator.urls"

WSGI_APPLICATION = "media_orchestrator.wsgi.application"

# Job state lives in Redis; the SQL database only backs contrib.auth for DRF.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "EXCEPTION_HANDLER": "media_jobs.exceptions.media_exception_handler",
}

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "loggers": {
        "media_jobs": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "celery": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = env_int("CELERY_TASK_TIME_LIMIT", 60 * 60 * 4)  # seconds
# At-least-once: ack after the handler returns, redeliver if the worker dies.
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# Media jobs (env-driven)
# -----------------------------------------------------
MEDIA_JOBS_REDIS_URL = env("MEDIA_JOBS_REDIS_URL", "redis://127.0.0.1:6379/1")
MEDIA_JOBS_STATUS_TTL = env_int("MEDIA_JOBS_STATUS_TTL", 7200)
MEDIA_JOBS_WORKSPACE_ROOT = Path(env("MEDIA_JOBS_WORKSPACE_ROOT", str(BASE_DIR / "var" / "sessions")))
MEDIA_JOBS_WORKSPACE_MAX_AGE = env_int("MEDIA_JOBS_WORKSPACE_MAX_AGE", 3600)
MEDIA_JOBS_SEGMENT_DURATION = env_int("MEDIA_JOBS_SEGMENT_DURATION", 6)
MEDIA_JOBS_THUMBNAIL_MAX_SIZE = env_int("MEDIA_JOBS_THUMBNAIL_MAX_SIZE", 512)
MEDIA_JOBS_SWEEP_INTERVAL = env_int("MEDIA_JOBS_SWEEP_INTERVAL", 600)  # 0 disables the beat schedule

# Per-stage timeouts for external tools (seconds)
MEDIA_JOBS_PROBE_TIMEOUT = env_int("MEDIA_JOBS_PROBE_TIMEOUT", 60)
MEDIA_JOBS_DOWNLOAD_TIMEOUT = env_int("MEDIA_JOBS_DOWNLOAD_TIMEOUT", 600)
MEDIA_JOBS_AUDIO_TIMEOUT = env_int("MEDIA_JOBS_AUDIO_TIMEOUT", 1800)
MEDIA_JOBS_THUMBNAIL_TIMEOUT = env_int("MEDIA_JOBS_THUMBNAIL_TIMEOUT", 1800)
MEDIA_JOBS_TRANSCODE_TIMEOUT = env_int("MEDIA_JOBS_TRANSCODE_TIMEOUT", 3600)
MEDIA_JOBS_STREAMING_TIMEOUT = env_int("MEDIA_JOBS_STREAMING_TIMEOUT", 3600)

YTDLP_BIN = env("YTDLP_BIN", "yt-dlp")
FFMPEG_BIN = env("FFMPEG_BIN", "ffmpeg")
FFPROBE_BIN = env("FFPROBE_BIN", "ffprobe")
