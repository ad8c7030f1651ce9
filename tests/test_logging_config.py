"""Unit tests for structured logging."""

import json
import logging

import pytest

from crmdedupe.logging_config import (
    ContextTextFormatter,
    StructuredFormatter,
    Timer,
    log_context,
    log_event,
    setup_logging,
)


def make_record(**extra):
    record = logging.LogRecord("crmdedupe.test", logging.INFO, __file__, 10, "merged %s", ("p",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Test JSON log output."""

    def test_json_fields(self):
        output = json.loads(StructuredFormatter().format(make_record(primary_id="p")))

        assert output["message"] == "merged p"
        assert output["level"] == "INFO"
        assert output["primary_id"] == "p"

    def test_sensitive_fields_redacted(self):
        output = json.loads(StructuredFormatter().format(make_record(email="a@x.com", phone_number="555")))

        assert output["email"] == "***REDACTED***"
        assert output["phone_number"] == "***REDACTED***"

    def test_long_sensitive_values_partially_masked(self):
        record = make_record(error={"email": "alice@example.com", "operation": "delete"})

        output = json.loads(StructuredFormatter().format(record))

        assert output["error"] == {"email": "ali...com", "operation": "delete"}

    def test_nested_log_context(self):
        with log_context(primary_id="p", merge_id="m-1"):
            with log_context(primary_id="q"):
                inner = json.loads(StructuredFormatter().format(make_record()))
            outer = json.loads(StructuredFormatter().format(make_record()))

        assert inner["primary_id"] == "q"
        assert inner["merge_id"] == "m-1"
        assert outer["primary_id"] == "p"

    def test_log_context_fields(self):
        with log_context(merge_id="m-1"):
            inside = json.loads(StructuredFormatter().format(make_record()))
        outside = json.loads(StructuredFormatter().format(make_record()))

        assert inside["merge_id"] == "m-1"
        assert "merge_id" not in outside


class TestTimer:
    def test_measures_duration(self):
        with Timer() as timer:
            sum(range(1000))

        assert timer.duration_ms is not None
        assert timer.duration_ms >= 0


class TestSetupLogging:
    """Test root logger configuration."""

    @pytest.fixture
    def root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield root
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_console_and_file(self, root_logger, tmp_path):
        log_file = tmp_path / "dedupe.log"

        setup_logging("json", "debug", str(log_file))
        log_event("crmdedupe.test", "merge_finished", primary_id="p")
        for handler in root_logger.handlers:
            handler.flush()

        assert root_logger.level == logging.DEBUG
        assert all(isinstance(h.formatter, StructuredFormatter) for h in root_logger.handlers)
        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["message"] == "merge_finished"
        assert entry["primary_id"] == "p"

    def test_text_format(self, root_logger):
        setup_logging("text", "WARNING")

        assert root_logger.level == logging.WARNING
        assert not isinstance(root_logger.handlers[0].formatter, StructuredFormatter)
        assert isinstance(root_logger.handlers[0].formatter, ContextTextFormatter)


class TestContextTextFormatter:
    """Test plain text output."""

    def test_context_appended(self):
        with log_context(primary_id="p"):
            line = ContextTextFormatter().format(make_record(merged_count=2))

        assert line.endswith("merged p [primary_id=p]")
        assert "merged_count" not in line

    def test_no_suffix_without_context(self):
        line = ContextTextFormatter().format(make_record())

        assert line.endswith(" - crmdedupe.test - INFO - merged p")
