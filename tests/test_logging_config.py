"""Tests for logging_config module.

Tests console and per-run file handlers and the structured JSON formatter.
"""

import json
import logging
import sys

import pytest

from credrotate.logging_config import (LOGGER_NAME, StructuredFormatter,
                                       configure_logging, run_id_var)


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    run_id_var.set(None)


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_console_only(self) -> None:
        logger = configure_logging(log_level="WARNING", log_to_file=False)

        assert logger.name == LOGGER_NAME
        assert logger.level == logging.WARNING
        assert [type(h).__name__ for h in logger.handlers] == ["StreamHandler"]
        assert logger.propagate is False

    def test_level_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("CREDROTATE_LOG_LEVEL", "ERROR")
        logger = configure_logging(log_to_file=False)
        assert logger.level == logging.ERROR

    def test_unknown_level_falls_back_to_info(self) -> None:
        logger = configure_logging(log_level="chatty", log_to_file=False)
        assert logger.level == logging.INFO

    def test_file_handler_records_debug(self, tmp_path) -> None:
        log_dir = tmp_path / "logs"
        logger = configure_logging(log_dir=log_dir, log_level="INFO", log_to_console=False,
                                   run_id="rotate-test")

        logging.getLogger(f"{LOGGER_NAME}.credentials.rotation").debug("probe detail")
        for handler in logger.handlers:
            handler.flush()

        log_files = list(log_dir.glob("rotate-test_*.log"))
        assert len(log_files) == 1
        assert "probe detail" in log_files[0].read_text(encoding="utf-8")

    def test_idempotent(self, tmp_path) -> None:
        """Calling configure_logging twice does not duplicate handlers."""
        configure_logging(log_to_file=False)
        logger = configure_logging(log_to_file=False)
        assert len(logger.handlers) == 1

    def test_no_outputs_gets_null_handler(self) -> None:
        logger = configure_logging(log_to_console=False, log_to_file=False)
        assert [type(h).__name__ for h in logger.handlers] == ["NullHandler"]


class TestStructuredFormatter:
    def test_json_line_with_run_id(self) -> None:
        run_id_var.set("rotate-42")
        record = logging.LogRecord(
            name="credrotate.credentials.rotation",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Rotated %s",
            args=("AKIAOLDKEY0000000001",),
            exc_info=None,
        )
        record.key_id = "AKIANEWKEY0000000001"

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["message"] == "Rotated AKIAOLDKEY0000000001"
        assert data["run_id"] == "rotate-42"
        assert data["key_id"] == "AKIANEWKEY0000000001"

    def test_exception_is_included(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            exc_info = sys.exc_info()

        record = logging.LogRecord("credrotate", logging.ERROR, __file__, 1, "failed", None, exc_info)
        data = json.loads(StructuredFormatter().format(record))

        assert "ValueError: bad" in data["exception"]
