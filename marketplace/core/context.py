"""Per-request context carried in ContextVars.

The RequestContextMiddleware sets the request ID; the auth dependency sets
the user ID once the caller is known, and enrollment routes set the course
ID. RequestContextFilter copies them onto every LogRecord so formatters can
print them.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
user_id_var: ContextVar[int | None] = ContextVar("user_id", default=None)
course_id_var: ContextVar[int | None] = ContextVar("course_id", default=None)


class RequestContextFilter(logging.Filter):
    """Inject request_id, user_id and course_id into LogRecords.

    A filter rather than a formatter because only filters may add fields to
    the record before it is formatted. Explicit ``extra=`` values win.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_var.get()  # type: ignore[attr-defined]
        if getattr(record, "course_id", None) is None:
            record.course_id = course_id_var.get()  # type: ignore[attr-defined]
        return True
