"""Logging utilities for tripstats.

The status line is rendered on stdout, so console logging always goes to
stderr and defaults to WARNING. Set ``TRIPSTATS_LOG_LEVEL=DEBUG`` to see why a
cache was rejected or which transcript lines were skipped.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


_LOG_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "asctime",
    "stacklevel",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """Formatter with ISO timestamps and ``extra=`` context appended as JSON."""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return timestamp.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _LOG_RECORD_FIELDS and not key.startswith("_")
        }
        if extras:
            try:
                serialized = json.dumps(extras, sort_keys=True, ensure_ascii=True, default=str)
            except (TypeError, ValueError):
                serialized = str(extras)
            return f"{message} | {serialized}"
        return message


class TripstatsLogger:
    """Logger for tripstats."""

    def __init__(self, name: str = "tripstats"):
        self.logger = logging.getLogger(name)
        level_name = os.getenv("TRIPSTATS_LOG_LEVEL", "WARNING").upper()
        level = getattr(logging, level_name, logging.WARNING)
        # File handlers capture debug logs while the console respects the configured level.
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
            self.logger.addHandler(console_handler)

        self._file_handler: Optional[logging.Handler] = None
        self._file_handler_path: Optional[Path] = None

    def attach_file_handler(self, log_file: Path) -> Path:
        """Attach or replace a file handler for logging to disk."""
        log_file.parent.mkdir(parents=True, exist_ok=True)
        if self._file_handler and self._file_handler_path == log_file:
            return log_file

        if self._file_handler:
            try:
                self.logger.removeHandler(self._file_handler)
                self._file_handler.close()
            except (ValueError, RuntimeError, OSError):
                pass

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter("%(asctime)s [%(levelname)s] %(message)s"))
        self.logger.addHandler(file_handler)
        self._file_handler = file_handler
        self._file_handler_path = log_file
        return log_file

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.debug(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.warning(message, *args, **kwargs)


_logger: Optional[TripstatsLogger] = None


def get_logger() -> TripstatsLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = TripstatsLogger()
    return _logger


def enable_file_logging() -> Optional[Path]:
    """Write debug logs to the directory named by ``TRIPSTATS_LOG_DIR``, if set."""
    log_dir = os.getenv("TRIPSTATS_LOG_DIR")
    if not log_dir:
        return None
    logger = get_logger()
    log_file = Path(log_dir).expanduser() / f"tripstats_{datetime.now().strftime('%Y%m%d')}.log"
    try:
        logger.attach_file_handler(log_file)
    except OSError as exc:
        logger.warning(
            "[logging] Could not open log file: %s: %s",
            type(exc).__name__,
            exc,
            extra={"path": str(log_file)},
        )
        return None
    logger.debug(f"[logging] File logging enabled at {log_file}")
    return log_file
