"""Wiring for the dashboard cache and service.

The ``CacheAside`` handle is built once, lazily, from settings:
``CACHE_BACKEND`` selects ``redis``, ``memory`` or ``none``. Write paths
elsewhere call ``invalidate_dashboard`` (usually through
``transaction.on_commit``) so readers see their changes before the TTL
runs out. This module must not import the orders app's services.
"""

import logging
import threading
from typing import Optional

from django.conf import settings

from .aggregation import KEY_PATTERN, DashboardReader, DashboardService
from .cache import CacheAside, CircuitBreaker, InMemoryCache, NullCache, RedisCache

logger = logging.getLogger("dashboard.cache")

_cache: Optional[CacheAside] = None
_lock = threading.Lock()

_CACHE_SETTINGS = {
    "CACHE_BACKEND",
    "REDIS_URL",
    "CACHE_SOCKET_TIMEOUT",
    "CACHE_RETRY_MAX",
    "CACHE_RETRY_BACKOFF_BASE",
    "CACHE_RETRY_MAX_SLEEP",
    "CACHE_CIRCUIT_FAIL_THRESHOLD",
    "CACHE_CIRCUIT_RESET_TIMEOUT",
    "DASHBOARD_CACHE_TTL",
}


def build_cache() -> CacheAside:
    kind = settings.CACHE_BACKEND
    if kind == "redis" and settings.REDIS_URL:
        backend = RedisCache(
            settings.REDIS_URL,
            socket_timeout=settings.CACHE_SOCKET_TIMEOUT,
            retries=settings.CACHE_RETRY_MAX,
            backoff_base=settings.CACHE_RETRY_BACKOFF_BASE,
            backoff_cap=settings.CACHE_RETRY_MAX_SLEEP,
        )
    elif kind == "memory":
        backend = InMemoryCache()
    else:
        if kind == "redis":
            logger.warning("CACHE_BACKEND=redis without REDIS_URL, caching disabled")
        backend = NullCache()

    breaker = CircuitBreaker(
        "cache",
        fail_threshold=settings.CACHE_CIRCUIT_FAIL_THRESHOLD,
        reset_timeout=settings.CACHE_CIRCUIT_RESET_TIMEOUT,
    )
    logger.info("dashboard cache ready", extra={"backend": type(backend).__name__})
    return CacheAside(backend, breaker, default_ttl=settings.DASHBOARD_CACHE_TTL)


def get_cache() -> CacheAside:
    global _cache
    if _cache is None:
        with _lock:
            if _cache is None:
                _cache = build_cache()
    return _cache


def reset_cache(cache: Optional[CacheAside] = None) -> None:
    """Drop the shared handle, or replace it with ``cache``."""
    global _cache
    with _lock:
        _cache = cache


def reset_on_setting_change(setting, **kwargs):
    if setting in _CACHE_SETTINGS:
        reset_cache()


def get_dashboard_service() -> DashboardService:
    return DashboardService(
        DashboardReader(workers=settings.DASHBOARD_QUERY_WORKERS),
        get_cache(),
        ttl=settings.DASHBOARD_CACHE_TTL,
    )


def invalidate_dashboard() -> None:
    get_cache().invalidate(KEY_PATTERN)
