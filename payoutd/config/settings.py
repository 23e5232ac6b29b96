import os
from pathlib import Path
from urllib.parse import quote

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env if present. Real environment variables win over the file.
load_dotenv(BASE_DIR / ".env")

# ======== CRITICAL SECURITY SETTINGS ========
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret")
if SECRET_KEY == "dev-insecure-secret" and os.getenv("ENVIRONMENT") == "production":
    raise ValueError("DJANGO_SECRET_KEY must be set with a secure value in production!")

DEBUG = os.getenv("DJANGO_DEBUG", "0") == "1"
if DEBUG and os.getenv("ENVIRONMENT") == "production":
    raise ValueError("DEBUG mode is not allowed in production! Set DJANGO_DEBUG=0")

ALLOWED_HOSTS = os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",")
if "*" in ALLOWED_HOSTS and os.getenv("ENVIRONMENT") == "production":
    raise ValueError("ALLOWED_HOSTS must be specified in production! Do not use '*'")

LANGUAGE_CODE = os.getenv("DJANGO_LANGUAGE_CODE", "en-us")
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

API_PREFIX = "/api-dj"


def _env_flag(name: str, default: str = "0") -> bool:
    """Normalize boolean-ish environment flags (1/true/on/y/yes)."""
    value = os.getenv(name, default)
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on", "y"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "django_celery_results",
    "django_celery_beat",
    "apps.core",
    "apps.payouts",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("POSTGRES_DB", "payouts"),
        "USER": os.getenv("POSTGRES_USER", "payouts"),
        "PASSWORD": os.getenv("POSTGRES_PASSWORD", "changeme"),
        "HOST": os.getenv("POSTGRES_HOST", "localhost"),
        "PORT": os.getenv("POSTGRES_PORT", "5432"),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAdminUser",
    ),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Payout Processing API",
    "DESCRIPTION": "Operational endpoints for the payout queue under /api-dj",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "static"

# ============================================================================
# REDIS (cache / connection manager)
# ============================================================================
# Priority: REDIS_URL, then REDIS_HOST+REDIS_PORT+REDIS_PASSWORD assembled into
# a URL, then discrete localhost defaults.
REDIS_URL = (os.getenv("REDIS_URL") or "").strip() or None
REDIS_HOST = (os.getenv("REDIS_HOST") or "").strip() or None
REDIS_PORT = (os.getenv("REDIS_PORT") or "").strip() or None
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD") or None
REDIS_USERNAME = (os.getenv("REDIS_USERNAME") or "default").strip()
REDIS_DB = _env_int("REDIS_DB", 0)
REDIS_CONNECT_TIMEOUT = _env_int("REDIS_CONNECT_TIMEOUT", 10)  # seconds
REDIS_MAX_RETRIES = _env_int("REDIS_MAX_RETRIES", 10)
REDIS_BACKOFF_STEP = 0.1  # seconds added per consecutive retry
REDIS_BACKOFF_CAP = 3.0  # seconds


def _broker_url() -> str:
    if REDIS_URL:
        return REDIS_URL
    if REDIS_HOST and REDIS_PORT and REDIS_PASSWORD:
        userinfo = f"{quote(REDIS_USERNAME, safe='')}:{quote(REDIS_PASSWORD, safe='')}"
        return f"redis://{userinfo}@{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"
    return f"redis://{REDIS_HOST or 'localhost'}:{REDIS_PORT or 6379}/{REDIS_DB}"


# ============================================================================
# CELERY CONFIGURATION
# ============================================================================
PAYOUT_QUEUE_NAME = "payout-processing"
BATCH_QUEUE_NAME = "batch-processing"

PAYOUT_WORKER_CONCURRENCY = _env_int("PAYOUT_WORKER_CONCURRENCY", 5)
PAYOUT_WORKER_RATE_LIMIT = _env_int("PAYOUT_WORKER_RATE_LIMIT", 10)  # jobs per minute
BATCH_WORKER_CONCURRENCY = _env_int("BATCH_WORKER_CONCURRENCY", 1)
BATCH_WORKER_RATE_LIMIT = _env_int("BATCH_WORKER_RATE_LIMIT", 1)  # jobs per minute
PAYOUT_WORKERS_ENABLED = _env_flag("PAYOUT_WORKERS_ENABLED", "0")

# Platform flags that mean "this process is a short-lived invocation"
SERVERLESS_ENV_MARKERS = ("VERCEL", "NETLIFY", "AWS_LAMBDA_FUNCTION_NAME")

PAYOUT_JOB_ATTEMPTS = 3
PAYOUT_JOB_BACKOFF = 5  # seconds, doubled on every retry
BATCH_JOB_ATTEMPTS = 2
BATCH_JOB_BACKOFF = 30  # seconds, fixed
PAYOUT_JOB_LOCK_TTL = _env_int("PAYOUT_JOB_LOCK_TTL", 24 * 60 * 60)  # seconds
PAYOUT_BATCH_SIZE = 50
RECURRING_BATCH_SIZE = 100
RECURRING_BATCH_INTERVAL_HOURS = 2

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL") or _broker_url()
CELERY_RESULT_BACKEND = "django-db"
CELERY_RESULT_EXTENDED = True
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_TASK_TIME_LIMIT = 10 * 60  # 10 minutes
CELERY_TASK_SOFT_TIME_LIMIT = 8 * 60
CELERY_TASK_ALWAYS_EAGER = False
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_TASK_ROUTES = {
    "apps.payouts.tasks.process_payout": {"queue": PAYOUT_QUEUE_NAME},
    "apps.payouts.tasks.process_batch": {"queue": BATCH_QUEUE_NAME},
}
CELERY_TASK_ANNOTATIONS = {
    "apps.payouts.tasks.process_payout": {"rate_limit": f"{PAYOUT_WORKER_RATE_LIMIT}/m"},
    "apps.payouts.tasks.process_batch": {"rate_limit": f"{BATCH_WORKER_RATE_LIMIT}/m"},
}
CELERY_BROKER_TRANSPORT_OPTIONS = {
    # must exceed the longest countdown we schedule, or delayed jobs get redelivered
    "visibility_timeout": 3 * 60 * 60,
    "queue_order_strategy": "priority",
}

# Celery Beat (Periodic Tasks)
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"

# ============================================================================
# TRANSFER GATEWAY
# ============================================================================
FLUTTERWAVE_SECRET_KEY = os.getenv("FLUTTERWAVE_SECRET_KEY") or None
FLUTTERWAVE_BASE_URL = os.getenv("FLUTTERWAVE_BASE_URL", "https://api.flutterwave.com/v3")
FLUTTERWAVE_TIMEOUT = (
    _env_int("FLUTTERWAVE_CONNECT_TIMEOUT", 5),
    _env_int("FLUTTERWAVE_READ_TIMEOUT", 30),
)
PUBLIC_APP_URL = os.getenv("PUBLIC_APP_URL", "http://localhost:3000")
PAYOUT_CALLBACK_PATH = "/api/webhooks/flutterwave/payout-status"

# Cookie Security
CSRF_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_HTTPONLY = True
SESSION_COOKIE_SECURE = not DEBUG
SESSION_COOKIE_HTTPONLY = True

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
        'payouts_file': {
            'level': 'WARNING',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': BASE_DIR / 'logs' / 'payouts.log',
            'maxBytes': 1024 * 1024 * 10,  # 10MB
            'backupCount': 5,
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv("LOG_LEVEL", "INFO").upper(),
    },
    'loggers': {
        'apps.payouts': {
            'handlers': ['console', 'payouts_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps.payments.gateways': {
            'handlers': ['console', 'payouts_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'django.request': {
            'handlers': ['console'],
            'level': 'ERROR',
            'propagate': False,
        },
    },
}

(BASE_DIR / 'logs').mkdir(exist_ok=True)
