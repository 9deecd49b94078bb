"""Tests for logging setup."""

import io
import json
import logging
import sys

import pytest

from extloader.config import settings
from extloader.logging_config import (
    LOGGER_NAME,
    ContextFilter,
    JsonFormatter,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Restore handlers and level of the package logger after each test."""
    logger = logging.getLogger(LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)


def make_record(message: str = "hello", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="extloader.loader",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_configures_package_logger(self):
        logger = setup_logging(context="tests", level="debug", log_format="standard")

        assert logger.name == LOGGER_NAME
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_repeated_calls_replace_handlers(self):
        setup_logging(level="INFO")
        logger = setup_logging(level="WARNING")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING

    def test_defaults_come_from_settings(self):
        logger = setup_logging()

        assert logging.getLevelName(logger.level) == settings.log_level.upper()

    def test_json_format(self):
        logger = setup_logging(log_format="json")

        assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    def test_console_disabled(self, monkeypatch):
        monkeypatch.setattr(settings, "log_console_enabled", False)

        logger = setup_logging()

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.NullHandler)

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging(level="chatty")

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unknown log format"):
            setup_logging(log_format="xml")

    def test_context_in_output(self):
        logger = setup_logging(context="worker", level="INFO")
        stream = io.StringIO()
        logger.handlers[0].setStream(stream)

        logging.getLogger("extloader.loader").info("discovered 2 extensions")

        output = stream.getvalue()
        assert "[worker]" in output
        assert "discovered 2 extensions" in output


class TestFormatting:
    """Tests for the filter and formatter."""

    def test_context_filter(self):
        record = make_record()

        assert ContextFilter("tests").filter(record) is True
        assert record.context == "tests"

    def test_json_formatter(self):
        record = make_record("loaded Blog", level=logging.WARNING)
        record.context = "tests"

        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "loaded Blog"
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "extloader.loader"
        assert payload["context"] == "tests"
        assert "timestamp" in payload

    def test_json_formatter_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        payload = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in payload["exception"]
