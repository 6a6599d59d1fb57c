import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.dashboard.providers import get_cache

logger = logging.getLogger("gateway")


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        logger.exception("health check: database unreachable")

    # the cache is best-effort, so it is reported but never fails the check
    cache = get_cache().health()

    code = 200 if db_ok else 503
    return JsonResponse(
        {"ok": db_ok, "components": {"db": {"ok": db_ok}, "cache": cache}},
        status=code,
    )
