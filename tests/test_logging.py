"""Tests for the structured logging system (library_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from library_kernel.exceptions import ContentionError, InvariantViolationError
from library_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "library_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("copy_reserved", extra={"available_copies": 2})

        assert _parse_log(stream)["available_copies"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", loan_id="loan-1")
        get_logger("test").info("return_started")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["loan_id"] == "loan-1"

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("fee", extra={"book_ref": uid, "late_fee": Decimal("5.00")})

        record = _parse_log(stream)
        assert record["book_ref"] == str(uid)
        assert record["late_fee"] == "5.00"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InvariantViolationError("copy_bounds", "Book", "b-1", "available_copies=-1")
        except InvariantViolationError:
            get_logger("test").error("guard_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "InvariantViolationError"
        assert record["exc_code"] == "INVARIANT_VIOLATION"
        assert record["exc_invariant"] == "copy_bounds"
        assert record["exc_entity_id"] == "b-1"
        assert "traceback" in record

    def test_contention_error_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ContentionError("borrow", "database is locked")
        except ContentionError:
            get_logger("test").error("borrow_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "LOCK_CONTENTION"
        assert record["exc_operation"] == "borrow"

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


class TestLogContext:

    def test_set_and_clear(self):
        LogContext.set(correlation_id="x", book_id="b")
        assert LogContext.get_all() == {"correlation_id": "x", "book_id": "b"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", actor_id=uuid4()):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_ignores_unknown_and_none(self):
        with LogContext.bind(review_id=None, unknown_field="x"):
            assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("library_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.lending_workflow").name == (
            "library_kernel.services.lending_workflow"
        )
