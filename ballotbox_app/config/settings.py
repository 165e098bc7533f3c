"""Django settings for ballotbox.

Everything deployment-specific comes from the environment. Without
DATABASE_HOST the project falls back to SQLite, and without REDIS_URL to the
local-memory cache, which is what the test suite runs against.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_list(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


DEBUG: bool = _env_bool("DEBUG", default=False)
SECRET_KEY: str = os.environ.get("SECRET_KEY", "dev-only-insecure-secret-key-change-me-please")
ALLOWED_HOSTS: list[str] = _env_list("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "post_office",
    "voting",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "voting.middleware.SessionTokenMiddleware",
    "voting.middleware.ServiceErrorMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

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
    {
        "BACKEND": "post_office.template.backends.post_office.PostOfficeTemplates",
        "APP_DIRS": True,
        "DIRS": [],
        "OPTIONS": {
            "context_processors": [],
        },
    },
]

_DATABASE_HOST = os.environ.get("DATABASE_HOST", "").strip()
if _DATABASE_HOST:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "HOST": _DATABASE_HOST,
            "PORT": os.environ.get("DATABASE_PORT", "5432"),
            "NAME": os.environ.get("DATABASE_NAME", "ballotbox"),
            "USER": os.environ.get("DATABASE_USER", "ballotbox"),
            "PASSWORD": os.environ.get("DATABASE_PASSWORD", ""),
            "CONN_MAX_AGE": _env_int("DATABASE_CONN_MAX_AGE", 60),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

_REDIS_URL = os.environ.get("REDIS_URL", "").strip()
if _REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": _REDIS_URL,
            "KEY_PREFIX": "ballotbox",
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "ballotbox",
        }
    }

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("TIME_ZONE", "UTC")
USE_I18N = False
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Mail. The delivery worker sends through django-post-office so every message
# gets an Email row and delivery log; the "backup" backend is only used when
# the primary SMTP relay refuses a message.
MAIL_DRY_RUN: bool = _env_bool("MAIL_DRY_RUN", default=False)
DEFAULT_FROM_EMAIL: str = os.environ.get("DEFAULT_FROM_EMAIL", "PEMIRA <no-reply@pemira.example.org>")
EMAIL_HOST: str = os.environ.get("EMAIL_HOST", "localhost")
EMAIL_PORT: int = _env_int("EMAIL_PORT", 587)
EMAIL_HOST_USER: str = os.environ.get("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD: str = os.environ.get("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS: bool = _env_bool("EMAIL_USE_TLS", default=True)
EMAIL_TIMEOUT: int = _env_int("EMAIL_TIMEOUT", 20)

BACKUP_EMAIL_HOST: str = os.environ.get("BACKUP_EMAIL_HOST", "")
BACKUP_EMAIL_PORT: int = _env_int("BACKUP_EMAIL_PORT", 587)
BACKUP_EMAIL_HOST_USER: str = os.environ.get("BACKUP_EMAIL_HOST_USER", "")
BACKUP_EMAIL_HOST_PASSWORD: str = os.environ.get("BACKUP_EMAIL_HOST_PASSWORD", "")
BACKUP_EMAIL_USE_TLS: bool = _env_bool("BACKUP_EMAIL_USE_TLS", default=True)

_PRIMARY_EMAIL_BACKEND = (
    "django.core.mail.backends.console.EmailBackend"
    if MAIL_DRY_RUN
    else os.environ.get("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
)
_POST_OFFICE_BACKENDS: dict[str, str] = {"default": _PRIMARY_EMAIL_BACKEND}
if BACKUP_EMAIL_HOST and not MAIL_DRY_RUN:
    _POST_OFFICE_BACKENDS["backup"] = "voting.mail_backends.BackupSMTPEmailBackend"

POST_OFFICE = {
    "BACKENDS": _POST_OFFICE_BACKENDS,
    "DEFAULT_PRIORITY": "now",
    "LOG_LEVEL": 1,
    "CELERY_ENABLED": False,
}

OTP_EMAIL_TEMPLATE_NAME: str = "voting-otp"

# Voter authentication.
OTP_TTL_SECONDS: int = _env_int("OTP_TTL_SECONDS", 5 * 60)
OTP_MANUAL_TTL_SECONDS: int = _env_int("OTP_MANUAL_TTL_SECONDS", 10 * 60)
OTP_RATE_LIMIT_LIMIT: int = _env_int("OTP_RATE_LIMIT_LIMIT", 3)
OTP_RATE_LIMIT_WINDOW_SECONDS: int = _env_int("OTP_RATE_LIMIT_WINDOW_SECONDS", 60 * 60)
OTP_COOLDOWN_LIMIT: int = _env_int("OTP_COOLDOWN_LIMIT", 1)
OTP_COOLDOWN_WINDOW_SECONDS: int = _env_int("OTP_COOLDOWN_WINDOW_SECONDS", 60)
VOTER_SESSION_MAX_AGE_SECONDS: int = _env_int("VOTER_SESSION_MAX_AGE_SECONDS", 60 * 60)

# Ledger and tallies.
RESULTS_CACHE_TTL_SECONDS: int = _env_int("RESULTS_CACHE_TTL_SECONDS", 30)
RESULTS_ACTIVITY_LIMIT: int = _env_int("RESULTS_ACTIVITY_LIMIT", 10)
VOTE_DELETE_GRACE_SECONDS: int = _env_int("VOTE_DELETE_GRACE_SECONDS", 60)
OFFLINE_TALLY_SERIALIZE: bool = _env_bool("OFFLINE_TALLY_SERIALIZE", default=True)
OFFLINE_TALLY_MAX_BATCH: int = _env_int("OFFLINE_TALLY_MAX_BATCH", 1000)

# Delivery queues. "throttle" caps job starts per rolling window across the
# whole worker, independent of concurrency.
DELIVERY_QUEUES: dict[str, dict[str, object]] = {
    "otp": {
        "concurrency": 5,
        "attempts": 3,
        "backoff_seconds": 1,
        "failed_retention": 1000,
        "throttle": None,
    },
    "broadcast": {
        "concurrency": 5,
        "attempts": 5,
        "backoff_seconds": 5,
        "failed_retention": 5000,
        "throttle": {"max_jobs": 5, "window_seconds": 5},
    },
}
DELIVERY_POLL_INTERVAL_SECONDS: float = float(os.environ.get("DELIVERY_POLL_INTERVAL_SECONDS", "1.0"))
DELIVERY_STALE_JOB_SECONDS: int = _env_int("DELIVERY_STALE_JOB_SECONDS", 10 * 60)

LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "health_endpoint": {
            "()": "config.logging_filters.HealthEndpointFilter",
        },
        "dashboard_poll": {
            "()": "config.logging_filters.DashboardPollFilter",
        },
    },
    "formatters": {
        "default": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
        "server_console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["health_endpoint", "dashboard_poll"],
        },
    },
    "loggers": {
        "django.server": {
            "handlers": ["server_console"],
            "level": "INFO",
            "propagate": False,
        },
        "voting": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "post_office": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
}

SENTRY_DSN: str = os.environ.get("SENTRY_DSN", "").strip()
if SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        environment=os.environ.get("SENTRY_ENVIRONMENT", "production"),
        traces_sample_rate=float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "0")),
        send_default_pii=False,
        send_client_reports=False,
        auto_session_tracking=False,
    )
