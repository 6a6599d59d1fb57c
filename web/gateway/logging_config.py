"""Structured logging configuration with request correlation.

Records are rendered as JSON by ``python-json-logger``. The
``RequestIdFilter`` copies the current request id (set by
``gateway.middleware.RequestIdMiddleware`` in ``REQUEST_ID_CTX``) onto
every record, so a single request can be followed across the orders,
dashboard and cache loggers without passing the id around.
"""

import contextvars
from logging import Filter, LogRecord

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"
APP_LOGGERS = ("gateway", "orders", "catalog", "dashboard")


class RequestIdFilter(Filter):
    """Attach ``request_id`` to log records.

    Outside a request (management commands, worker threads) the context
    variable holds its default ``"-"``, so formatters can always reference
    ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True


def build_logging_config(level: str = "INFO") -> dict:
    """Return a ``logging.config.dictConfig`` mapping for the project.

    Args:
        level: Level applied to the application loggers.

    Returns:
        dict: Configuration with one JSON console handler shared by the
        application loggers and ``django.request``.
    """
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": "gateway.logging_config.RequestIdFilter"},
        },
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": LOG_FORMAT,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "filters": ["request_id"],
            },
        },
        "loggers": {
            **{name: {"handlers": ["console"], "level": level, "propagate": False} for name in APP_LOGGERS},
            "django.request": {"handlers": ["console"], "level": "ERROR", "propagate": False},
        },
    }
