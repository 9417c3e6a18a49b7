"""JSON log output: one parseable object per line, with request and
engine context fields promoted to top-level keys."""

from __future__ import annotations

import json
import logging
import sys
from uuid import UUID

from lms.core.logging import _ContainerFormatter, _JsonFormatter


def _record(msg: str = "Enrollment recalculated", **kwargs) -> logging.LogRecord:
    return logging.LogRecord(
        name=kwargs.pop("name", "lms.services.aggregator"),
        level=kwargs.pop("level", logging.INFO),
        pathname="aggregator.py",
        lineno=1,
        msg=msg,
        args=kwargs.pop("args", ()),
        exc_info=kwargs.pop("exc_info", None),
    )


def test_json_formatter_produces_valid_json() -> None:
    output = _JsonFormatter().format(_record("Quiz attempt %d graded", args=(3,)))
    parsed = json.loads(output)
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "lms.services.aggregator"
    assert parsed["message"] == "Quiz attempt 3 graded"
    assert "timestamp" in parsed


def test_json_formatter_promotes_engine_context() -> None:
    record = _record()
    record.request_id = "abc-123"  # type: ignore[attr-defined]
    record.enrollment_id = "e-1"  # type: ignore[attr-defined]
    record.learner_id = "l-1"  # type: ignore[attr-defined]
    record.quiz_id = "q-1"  # type: ignore[attr-defined]
    record.duration_ms = 12.5  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["enrollment_id"] == "e-1"
    assert parsed["learner_id"] == "l-1"
    assert parsed["quiz_id"] == "q-1"
    assert parsed["duration_ms"] == 12.5
    assert "lesson_id" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("version moved")
    except ValueError:
        output = _JsonFormatter().format(
            _record("Recalculation failed", level=logging.ERROR, exc_info=sys.exc_info())
        )

    parsed = json.loads(output)
    assert "ValueError: version moved" in parsed["exception"]


def test_json_formatter_stringifies_non_json_values() -> None:
    record = _record()
    record.enrollment_id = UUID(int=7)  # type: ignore[attr-defined]
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["enrollment_id"] == str(UUID(int=7))


def test_container_formatter_is_plain_text() -> None:
    output = _ContainerFormatter().format(_record("server started", name="lms.main"))
    assert "INFO" in output
    assert "lms.main" in output
    assert "server started" in output
    assert not output.lstrip().startswith("{")
