"""
Logging configuration for credrotate.

Console output plus a per-run log file, with optional structured JSON output
carrying a run id for correlating every line of one rotation.

Usage:
    from credrotate.logging_config import configure_logging, run_id_var

    configure_logging(log_dir=Path("~/.credrotate/logs").expanduser(), run_id="rotate-20260101")

Environment Variables:
    CREDROTATE_LOG_LEVEL - Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "credrotate"

# Context var for the run id (used in structured logging)
run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

_STANDARD_ATTRS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "exc_info",
    "exc_text",
    "stack_info",
    "message",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter with the current run id.

    Each log entry includes timestamp, level, logger name, message, run id,
    and any extra fields added to the log record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": run_id_var.get(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def configure_logging(
    log_dir: Optional[Path] = None,
    log_level: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    run_id: Optional[str] = None,
    structured: bool = False,
) -> logging.Logger:
    """
    Configure the credrotate logger.

    Args:
        log_dir: Directory for log files (required when log_to_file is set)
        log_level: Log level (defaults to $CREDROTATE_LOG_LEVEL or INFO)
        log_to_console: Whether to log to stderr
        log_to_file: Whether to write a log file
        run_id: Run identifier, used in the log filename and structured output
        structured: Emit JSON lines instead of plain text

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)

    # Clear existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_level is None:
        log_level = os.environ.get("CREDROTATE_LOG_LEVEL", "INFO")
    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)
    logger.propagate = False

    if run_id:
        run_id_var.set(run_id)

    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_to_file and log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_filename = f"{run_id}_{timestamp}.log" if run_id else f"credrotate_{timestamp}.log"
        log_path = log_dir / log_filename

        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        # The file always records debug detail
        logger.setLevel(logging.DEBUG)

        logger.debug(f"Logging to: {log_path}")

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
