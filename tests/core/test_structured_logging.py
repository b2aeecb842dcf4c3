"""JSON log output (LOG_JSON=true).

A log pipeline that expects JSON silently drops fields when it gets plain
text, so the shape of each line is pinned here.
"""

from __future__ import annotations

import json
import logging
import sys

from marketplace.core.context import RequestContextFilter
from marketplace.core.logging import _ContainerFormatter, _JsonFormatter, setup_logging


def _record(msg: str = "enrolled", level: int = logging.INFO, **fields):
    record = logging.LogRecord(
        name="marketplace.api.enrollments",
        level=level,
        pathname="enrollments.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in fields.items():
        setattr(record, key, value)
    return record


def test_json_formatter_produces_valid_json() -> None:
    output = _JsonFormatter().format(_record("Enrolled user=7"))
    parsed = json.loads(output)
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "marketplace.api.enrollments"
    assert parsed["message"] == "Enrolled user=7"
    assert "timestamp" in parsed


def test_json_formatter_includes_context_fields() -> None:
    record = _record(
        request_id="abc-123",
        method="POST",
        path="/api/enrollments",
        user_id=7,
        course_id=3,
        status_code=201,
        duration_ms=12.5,
    )
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["path"] == "/api/enrollments"
    assert parsed["user_id"] == 7
    assert parsed["course_id"] == 3
    assert parsed["status_code"] == 201
    assert parsed["duration_ms"] == 12.5


def test_json_formatter_omits_unset_context() -> None:
    parsed = json.loads(_JsonFormatter().format(_record(user_id=None)))
    assert "user_id" not in parsed
    assert "course_id" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("progress out of range")
    except ValueError:
        record = _record("Something failed", level=logging.ERROR)
        record.exc_info = sys.exc_info()
    parsed = json.loads(_JsonFormatter().format(record))
    assert "ValueError: progress out of range" in parsed["exception"]


def test_container_formatter_is_not_json() -> None:
    output = _ContainerFormatter().format(_record("server started"))
    assert "INFO" in output
    assert "marketplace.api.enrollments" in output
    try:
        json.loads(output)
        raise AssertionError("Container format should not be valid JSON")
    except json.JSONDecodeError:
        pass


def test_setup_logging_json_mode_installs_filter() -> None:
    setup_logging("info", json_format=True)
    try:
        [handler] = logging.getLogger().handlers
        assert isinstance(handler.formatter, _JsonFormatter)
        assert any(isinstance(f, RequestContextFilter) for f in handler.filters)
    finally:
        setup_logging("info")
