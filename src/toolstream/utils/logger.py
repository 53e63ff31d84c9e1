"""
Logging setup for toolstream using Python's standard logging
with JSON formatting for structured logs.

Log destinations:
- Console (stderr): Human-readable format for debugging
- logs/errors.jsonl: JSON format for error tracking
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys

from typing import Any

from pythonjsonlogger import json as jsonlogger

from toolstream.api.middleware.request_context import get_request_context
from toolstream.core.constants import (
    LOG_BACKUP_COUNT_ERRORS,
    LOG_DIR,
    LOG_MAX_SIZE,
    LOG_PREVIEW_LENGTH,
    Settings,
)


class ErrorFilter(logging.Filter):
    """Filter to only allow ERROR and CRITICAL logs"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that adds colors to log levels.
    Format: HH:MM:SS [LEVEL] logger_name - message
    """

    GREY = "\x1b[38;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        level_fmt = f"{color}[{record.levelname}]{self.RESET}" if color else f"[{record.levelname}]"
        record.asctime = self.formatTime(record, "%H:%M:%S")
        message = f"{record.asctime} {level_fmt} {record.name} - {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_uvicorn_logging() -> None:
    """Route uvicorn's loggers through the same colored console format."""
    formatter = ColoredConsoleFormatter()

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = []
        uv_logger.setLevel(logging.INFO)
        if name != "uvicorn":
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            uv_logger.addHandler(handler)
            uv_logger.propagate = False


def setup_logging(
    name: str = "toolstream",
    debug: bool | None = None,
    log_to_file: bool | None = None,
) -> logging.Logger:
    """
    Set up logging with a console handler and a JSON error file.

    Args:
        name: Logger name
        debug: Enable debug logging (overrides DEBUG env var)
        log_to_file: Write logs/errors.jsonl (overrides LOG_TO_FILE env var)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    logger.handlers = []

    if debug is None:
        debug = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
    if log_to_file is None:
        log_to_file = os.getenv("LOG_TO_FILE", "true").lower() in ("true", "1", "yes")

    # --- Console Handler (Human-readable) ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    # --- Error Log Handler (JSON) ---
    if log_to_file:
        LOG_DIR.mkdir(exist_ok=True)
        error_handler = logging.handlers.RotatingFileHandler(
            LOG_DIR / "errors.jsonl",
            maxBytes=LOG_MAX_SIZE,
            backupCount=LOG_BACKUP_COUNT_ERRORS,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.addFilter(ErrorFilter())
        error_handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                timestamp=True,
            )
        )
        logger.addHandler(error_handler)

    return logger


def _preview(value: Any) -> str:
    text = str(value)
    if len(text) > LOG_PREVIEW_LENGTH:
        return text[:LOG_PREVIEW_LENGTH] + "..."
    return text


class ToolstreamLogger:
    """
    High-level logging interface for toolstream.
    Wraps standard Python logging and injects the request context as extras.
    """

    def __init__(self, name: str = "toolstream"):
        self.logger = setup_logging(name)

    def configure(self, settings: Settings) -> None:
        """Rebuild handlers from loaded settings instead of raw environment variables."""
        self.logger = setup_logging(self.logger.name, debug=settings.debug, log_to_file=settings.log_to_file)

    def _enrich_context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        if ctx := get_request_context():
            for key, value in ctx.to_log_context().items():
                kwargs.setdefault(key, value)
        return kwargs

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._enrich_context(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._enrich_context(kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._enrich_context(kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Error level logging with optional exception info"""
        self.logger.error(message, extra=self._enrich_context(kwargs), exc_info=exc_info)

    def log_function_call(
        self,
        function_name: str,
        args: dict[str, Any],
        result: Any = None,
        error: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log one settled tool call with truncated previews."""
        outcome = f"error: {_preview(error)}" if error is not None else _preview(result)
        timing = f" [{duration_ms:.0f}ms]" if duration_ms is not None else ""
        extra = {"func": function_name, "tool_success": error is None}
        if duration_ms is not None:
            extra["ms"] = int(duration_ms)
        self.info(f"Function call: {function_name}({_preview(args)}) -> {outcome}{timing}", **extra)

    def log_loop_summary(self, rounds: int, calls: int, chars: int, truncated: bool, failed: bool) -> None:
        """Log the outcome of one agentic loop run."""
        status = "truncated" if truncated else "failed" if failed else "complete"
        self.info(
            f"Agentic loop {status}: {rounds} rounds, {calls} calls, {chars} chars",
            rounds=rounds,
            calls=calls,
            chars=chars,
            loop_status=status,
        )


# Global logger instance
logger = ToolstreamLogger()
