"""Django settings for the retailhub project.

Every deploy-time knob is read from the environment with a development
default, so the same module serves local runs, tests and production.
"""

import os
from pathlib import Path

from gateway.logging_config import build_logging_config

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key")
DEBUG = _env_bool("DJANGO_DEBUG")
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "rest_framework",
    "apps.catalog",
    "apps.orders",
    "apps.dashboard",
    "apps.monitoring",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
]

ROOT_URLCONF = "retailhub.urls"
WSGI_APPLICATION = "retailhub.wsgi.application"

# ---- Database ----
DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "HOST": os.getenv("DB_HOST", "retail-db"),
            "PORT": os.getenv("DB_PORT", "5432"),
            "NAME": os.getenv("DB_NAME", "retail"),
            "USER": os.getenv("DB_USER", "retail_user"),
            "PASSWORD": os.getenv("DB_PASSWORD", "retail-pass"),
            "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
            # Writers take the lock at BEGIN and wait for each other instead
            # of failing an upgrade from a read lock with "database is locked".
            "OPTIONS": {
                "transaction_mode": "IMMEDIATE",
                "timeout": int(os.getenv("DB_LOCK_TIMEOUT", "20")),
            },
            # A file, not shared-cache memory, so concurrent connections in
            # tests lock the same way they do in production.
            "TEST": {"NAME": os.getenv("DB_TEST_NAME", str(BASE_DIR / "test_db.sqlite3"))},
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_TZ = True

# ---- REST framework ----
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.BasicAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "EXCEPTION_HANDLER": "gateway.exceptions.api_exception_handler",
    "DEFAULT_THROTTLE_RATES": {
        "orders_list": os.getenv("THROTTLE_ORDERS_LIST", "600/min"),
        "orders_create": os.getenv("THROTTLE_ORDERS_CREATE", "120/min"),
        "orders_detail": os.getenv("THROTTLE_ORDERS_DETAIL", "600/min"),
        "dashboard": os.getenv("THROTTLE_DASHBOARD", "300/min"),
    },
}

# Throttle counters live in Django's local-memory cache; the dashboard
# cache below is a separate, optional Redis handle.
CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}}

# ---- Dashboard cache ----
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "redis" if os.getenv("REDIS_URL") else "none")
REDIS_URL = os.getenv("REDIS_URL", "")
CACHE_SOCKET_TIMEOUT = float(os.getenv("CACHE_SOCKET_TIMEOUT", "0.25"))
CACHE_RETRY_MAX = int(os.getenv("CACHE_RETRY_MAX", "2"))
CACHE_RETRY_BACKOFF_BASE = float(os.getenv("CACHE_RETRY_BACKOFF_BASE", "0.05"))
CACHE_RETRY_MAX_SLEEP = float(os.getenv("CACHE_RETRY_MAX_SLEEP", "0.5"))
CACHE_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("CACHE_CIRCUIT_FAIL_THRESHOLD", "3"))
CACHE_CIRCUIT_RESET_TIMEOUT = float(os.getenv("CACHE_CIRCUIT_RESET_TIMEOUT", "30"))
DASHBOARD_CACHE_TTL = int(os.getenv("DASHBOARD_CACHE_TTL", "300"))
DASHBOARD_QUERY_WORKERS = int(os.getenv("DASHBOARD_QUERY_WORKERS", "1"))

# ---- Gateway ----
API_MAX_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))

LOGGING = build_logging_config(os.getenv("LOG_LEVEL", "INFO"))
