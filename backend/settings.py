"""
Django settings for the cashbook ledger backend.

Every value that differs between machines is read from the environment.
A local ``.env`` file is loaded first so development setups do not need
to export anything by hand.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("LEDGER_SECRET_KEY", "django-insecure-cashbook-ledger-dev-key")
DEBUG = _env_bool("LEDGER_DEBUG", default=True)
ALLOWED_HOSTS = [h.strip() for h in os.environ.get("LEDGER_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "backend.ledger",
    "api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "backend.urls"

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

# SQLite by default; use PostgreSQL in production so select_for_update()
# actually takes row locks on account balances.
DATABASES = {
    "default": {
        "ENGINE": os.environ.get("LEDGER_DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.environ.get("LEDGER_DB_NAME", str(BASE_DIR / "ledger.sqlite3")),
        "USER": os.environ.get("LEDGER_DB_USER", ""),
        "PASSWORD": os.environ.get("LEDGER_DB_PASSWORD", ""),
        "HOST": os.environ.get("LEDGER_DB_HOST", ""),
        "PORT": os.environ.get("LEDGER_DB_PORT", ""),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.AutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "EXCEPTION_HANDLER": "api.exceptions.ledger_exception_handler",
    "COERCE_DECIMAL_TO_STRING": True,
}

LOG_LEVEL = os.environ.get("LEDGER_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} [{levelname}] {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "backend": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "api": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

LEDGER = {
    # First group is the check number, e.g. "Paiement CHQ-002" -> "002".
    "CHECK_NUMBER_PATTERN": os.environ.get("LEDGER_CHECK_NUMBER_PATTERN", r"CHQ-([\w-]+)"),
    "ENFORCE_SUFFICIENT_FUNDS": _env_bool("LEDGER_ENFORCE_SUFFICIENT_FUNDS", default=True),
    "SECRETARY_FUNDING_CATEGORIES": {
        "EXPENSE": {
            "budget_code": "SEC-FUND-EXP",
            "name": "Secretary account funding (out)",
            "sub_category": "Secretary funding",
        },
        "INCOME": {
            "budget_code": "SEC-FUND-INC",
            "name": "Secretary account funding (in)",
            "sub_category": "Secretary funding",
        },
    },
}
