"""Gateway middleware: request correlation, access logging and size limits.

``RequestIdMiddleware`` makes sure every request carries an identifier.
The id is taken from the incoming ``X-Request-Id`` header when the client
sends one, or generated server-side otherwise. It is stored on the
request, in ``REQUEST_ID_CTX`` for code that has no request at hand
(log filters, services), and echoed back in the ``X-Request-ID`` response
header. On the way out the middleware writes one structured
``request handled`` line with method, path, status and duration.

``ApiSizeLimitMiddleware`` rejects oversized bodies on ``/api/`` before
they reach a view.
"""

import logging
import time
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from .logging_config import REQUEST_ID_CTX

logger = logging.getLogger("gateway")


class RequestIdMiddleware(MiddlewareMixin):
    """Set and return a per-request identifier.

    Attributes:
        HEADER (str): Incoming header name as found in ``request.META``.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._started_at = time.monotonic()
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        started = getattr(request, "_started_at", None)
        logger.info(
            "request handled",
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 2) if started else None,
            },
        )
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reply 413 when an ``/api/`` request declares a body above ``API_MAX_BYTES``."""

    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > settings.API_MAX_BYTES:
            return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return None
