"""
Django settings for the local directory enrichment pipeline.

Web process serves the observability and health endpoints. Jobs execute on
Celery workers started by `manage.py run_jobs`, one worker per queue.
Prefect deployments (prefect.yaml) insert the periodic jobs.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(BASE_DIR / ".env")

# Environment variables (with defaults for development)
SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "django-insecure-dev-key-change-in-production"
)

DEBUG = os.environ.get("DEBUG", "True").lower() == "true"

ALLOWED_HOSTS = os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")

# API Keys (loaded from environment)
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
OPENROUTER_API_KEY = os.environ.get("OPENROUTER_API_KEY", "")
TAVILY_API_KEY = os.environ.get("TAVILY_API_KEY", "")
DEEPL_API_KEY = os.environ.get("DEEPL_API_KEY", "")

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Local apps
    "jobs.apps.JobsConfig",
    "directory.apps.DirectoryConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "config.middleware.CorrelationIdMiddleware",
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
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# Database
# Use PostgreSQL if DATABASE_URL is set, otherwise SQLite
DATABASE_URL = os.environ.get("DATABASE_URL")

if DATABASE_URL:
    import dj_database_url
    DATABASES = {
        "default": dj_database_url.parse(DATABASE_URL, conn_max_age=600)
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Logging: every record carries the correlation id of the request or job
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "correlation_id": {"()": "config.logging_filters.CorrelationIdFilter"},
    },
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "filters": ["correlation_id"],
            "formatter": "standard",
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
    },
}

# Job queues: name -> Celery worker concurrency for that queue.
# AI enrichment shares one rate limit on the CLI path, so it runs serially.
JOB_QUEUES = {
    "default": 10,
    "research": 3,
    "discovery": 2,
    "scraper": 2,
    "translations": 3,
    "ai_enrich": 1,
}

JOB_RUNNER = {
    "rescue_after_minutes": 60,
    # Outstanding jobs due this long ago without being claimed are re-sent to Celery
    "redispatch_after_minutes": 10,
    "prune_after_days": 7,
}

# Celery executes the jobs recorded in the jobs table
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_TASK_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_IGNORE_RESULT = True
CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_TASK_DEFAULT_QUEUE = "default"
CELERY_TIMEZONE = TIME_ZONE

# Enrichment pipeline configuration (read through PipelineConfig.from_settings)
PIPELINE = {
    "ENVIRONMENT": os.environ.get("PIPELINE_ENV", "development"),
    # auto: CLI when ENABLE_CLI_ENRICHMENT is set and `claude` is on PATH, else API
    "COMPLETION_BACKEND": os.environ.get("COMPLETION_BACKEND", "auto"),
    "ENABLE_CLI_ENRICHMENT": os.environ.get("ENABLE_CLI_ENRICHMENT", "").lower() in ("true", "1"),
    "CLI_EXECUTABLE": os.environ.get("CLAUDE_CLI", "claude"),
    "CLAUDE_MODEL": "claude-sonnet-4-20250514",
    "OPENROUTER_MODEL": "anthropic/claude-sonnet-4",
    "API_TIMEOUT": 60,
    "CLI_TIMEOUT": 300,
    "SEARCH_BACKEND": os.environ.get("SEARCH_BACKEND", "duckduckgo"),
    # auto: Claude when the CLI is usable, else DeepL
    "TRANSLATION_BACKEND": os.environ.get("TRANSLATION_BACKEND", "auto"),
    "BASE_LOCALE": "en",
    "RESEARCH_STAGGER_SECONDS": 5,
    "BATCH_SIZE": 100,
    "DISCOVERY_CITY_THRESHOLD": 5,
    "DISCOVERY_RADIUS_KM": 5.0,
    "CRAWL_MAX_PAGES": 20,
    "CRAWL_DELAY_SECONDS": 0.5,
    "SEARCH_MAX_RESULTS": 5,
    "SWEEP_LIMIT": 50,
}

# Production Security Settings
if not DEBUG:
    SECURE_SSL_REDIRECT = True
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    SECURE_HSTS_SECONDS = 31536000
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
