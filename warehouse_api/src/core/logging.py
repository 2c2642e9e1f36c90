from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union


# Request-scoped values picked up by every log record
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | tenant=%(tenant_id)s | "
    "user=%(user_id)s | %(message)s"
)


class LoggingContextFilter(logging.Filter):
    """
    Inject correlation_id, tenant_id and user_id from contextvars into each record.

    Missing values are rendered as '-'.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.correlation_id = correlation_id_var.get() or "-"
        record.tenant_id = tenant_id_var.get() or "-"
        record.user_id = user_id_var.get() or "-"
        return True


# PUBLIC_INTERFACE
def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure root logging with the request-context format on stdout."""
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(LoggingContextFilter())

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)

    # SQL statements are logged through SQL_ECHO instead
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
