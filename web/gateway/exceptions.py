"""DRF exception handler rendering every failure as ``{"detail": CODE}``.

Domain errors carry their own code and status, and a permission denial
is rendered as ``Forbidden``. DRF's authentication and throttling errors
keep their status but are normalized to the same shape. Anything else is
unexpected: it is logged with the request id and answered with a bare
``INTERNAL_ERROR`` so no internals leak to the client.
"""

import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from retailhub.errors import DomainError, Forbidden

logger = logging.getLogger("gateway")

_DRF_CODES = {
    exceptions.NotAuthenticated: "NOT_AUTHENTICATED",
    exceptions.AuthenticationFailed: "NOT_AUTHENTICATED",
    exceptions.NotFound: "NOT_FOUND",
    exceptions.MethodNotAllowed: "METHOD_NOT_ALLOWED",
    exceptions.Throttled: "THROTTLED",
    exceptions.ParseError: "VALIDATION_FAILED",
    exceptions.UnsupportedMediaType: "VALIDATION_FAILED",
}


def error_response(exc: DomainError) -> Response:
    """Render a domain error as a DRF response."""
    return Response(exc.to_payload(), status=exc.http_status)


def api_exception_handler(exc, context):
    # Permission classes raise DRF's PermissionDenied; render it as ours.
    if isinstance(exc, exceptions.PermissionDenied):
        exc = Forbidden()
    if isinstance(exc, DomainError):
        return error_response(exc)

    response = exception_handler(exc, context)
    if response is not None:
        for exc_type, code in _DRF_CODES.items():
            if isinstance(exc, exc_type):
                response.data = {"detail": code}
                break
        return response

    view = context.get("view")
    logger.exception(
        "unhandled error",
        extra={"view": type(view).__name__ if view is not None else None},
    )
    return Response({"detail": "INTERNAL_ERROR"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
