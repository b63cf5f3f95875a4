"""Tests for structured logging configuration."""

import json
import logging

from sugarwatch.logging_config import (
    JsonFormatter,
    TextFormatter,
    correlation_id_ctx,
    get_logger,
    setup_logging,
)


def make_record(level: int = logging.INFO, msg: str = "Dexcom sync finished", **extra):
    record = logging.LogRecord(
        name="sugarwatch.services.dexcom_sync",
        level=level,
        pathname="dexcom_sync.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    if extra:
        record.extra_fields = extra
    return record


class TestJsonFormatter:
    def test_basic_fields(self):
        parsed = json.loads(JsonFormatter(service_name="sugarwatch-test").format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["service"] == "sugarwatch-test"
        assert parsed["message"] == "Dexcom sync finished"
        assert "correlation_id" not in parsed
        assert "location" not in parsed

    def test_correlation_id_and_extras(self):
        token = correlation_id_ctx.set("req-42")
        try:
            output = JsonFormatter().format(make_record(athlete_id="a-1", readings_stored=3))
        finally:
            correlation_id_ctx.reset(token)

        parsed = json.loads(output)
        assert parsed["correlation_id"] == "req-42"
        assert parsed["athlete_id"] == "a-1"
        assert parsed["readings_stored"] == 3

    def test_errors_carry_location(self):
        parsed = json.loads(JsonFormatter().format(make_record(level=logging.ERROR)))

        assert parsed["location"]["line"] == 42
        assert parsed["location"]["file"] == "dexcom_sync.py"


class TestTextFormatter:
    def test_extras_appended(self):
        output = TextFormatter().format(make_record(athlete_id="a-1"))

        assert " - INFO - [-] - Dexcom sync finished athlete_id=a-1" in output


class TestSetupLogging:
    def test_repeated_setup_keeps_one_handler(self):
        setup_logging(log_format="text", log_level="DEBUG")
        setup_logging(log_format="json", log_level="INFO")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.INFO

    def test_structured_logger_passes_extras(self, caplog):
        logger = get_logger("sugarwatch.tests")

        with caplog.at_level(logging.INFO, logger="sugarwatch.tests"):
            logger.info("Stream opened", subscription_id=7)

        assert caplog.records[-1].extra_fields == {"subscription_id": 7}
