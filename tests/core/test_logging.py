from __future__ import annotations

import json
import logging

from pathway_progress.core.logging import (
    _ContainerFormatter,
    _JsonFormatter,
    request_id_var,
    setup_logging,
)


def _record(level: int = logging.INFO, msg: str = "hello", lineno: int = 1) -> logging.LogRecord:
    return logging.LogRecord(
        name="pathway_progress.services.engine",
        level=level,
        pathname="engine.py",
        lineno=lineno,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("nonexistent")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_quiets_sqlalchemy_at_debug() -> None:
    setup_logging("debug")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger("uvicorn").level == logging.WARNING


def test_setup_logging_selects_json_formatter() -> None:
    setup_logging("info", json_format=True)
    (handler,) = logging.getLogger().handlers
    assert isinstance(handler.formatter, _JsonFormatter)

    setup_logging("info")
    (handler,) = logging.getLogger().handlers
    assert isinstance(handler.formatter, _ContainerFormatter)


def test_container_formatter_location_only_for_warnings() -> None:
    fmt = _ContainerFormatter()
    assert "[engine.py:" not in fmt.format(_record(logging.INFO))
    assert "[engine.py:42]" in fmt.format(_record(logging.WARNING, lineno=42))


def test_json_formatter_includes_progression_context() -> None:
    record = _record(msg="Recomputed enrollment")
    record.enrollment_id = "e-1"  # type: ignore[attr-defined]
    record.activity_id = "a-1"  # type: ignore[attr-defined]
    record.request_id = "req-9"  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))

    assert parsed["message"] == "Recomputed enrollment"
    assert parsed["level"] == "INFO"
    assert parsed["enrollment_id"] == "e-1"
    assert parsed["activity_id"] == "a-1"
    assert parsed["request_id"] == "req-9"
    assert "exception" not in parsed


def test_json_formatter_omits_missing_context() -> None:
    parsed = json.loads(_JsonFormatter().format(_record()))
    assert "enrollment_id" not in parsed
    assert "timestamp" in parsed


def test_handler_filter_stamps_request_id_on_propagated_records() -> None:
    setup_logging("info")
    (handler,) = logging.getLogger().handlers
    token = request_id_var.set("req-77")
    try:
        record = _record()
        assert handler.filter(record)
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-77"  # type: ignore[attr-defined]
