"""
Logging setup for the API.

Every record carries the method and path of the request being served (or
``N/A`` outside a request), taken from a context variable that the request
middleware in ``main`` fills in.
"""
import logging
import sys
from contextvars import ContextVar
from typing import Optional, Tuple

from config import Settings

LOGGER_NAMES = ("main", "database", "listing", "auth", "errors", "products", "orders", "users", "accounts")

request_context: ContextVar[Optional[Tuple[str, str]]] = ContextVar("request_context", default=None)


class RequestFormatter(logging.Formatter):
    """Formatter that adds the current request's method and path to records"""

    def format(self, record):
        current = request_context.get()
        if current:
            record.method, record.path = current
        else:
            record.method = "N/A"
            record.path = "N/A"
        return super().format(record)


def setup_logging(settings: Settings) -> logging.Logger:
    formatter = RequestFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - "
        "[%(method)s %(path)s] - "
        "%(message)s"
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        # create_app may run more than once per process (tests)
        for existing in list(logger.handlers):
            if isinstance(existing.formatter, RequestFormatter):
                logger.removeHandler(existing)
        logger.addHandler(handler)
        logger.propagate = False

    app_logger = logging.getLogger("main")
    app_logger.info("Application logging configured", extra={
        "event_type": "app_startup",
        "environment": settings.environment,
    })
    return app_logger
