"""
Logging configuration for Glimpse.

Everything logs under the ``glimpse`` namespace. ``log_context`` tags the
records emitted inside it with the CLI command and store being worked on,
so one log file can be followed per store across commands:

    [2025-01-01 12:00:00] INFO     [storage.memory_store    ] {command=index store=db_...} Loaded ...
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

ROOT_LOGGER_NAME = "glimpse"

_context: ContextVar[dict[str, str]] = ContextVar("glimpse_log_context", default={})


@contextmanager
def log_context(**fields: object) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block.

    Nested blocks add to the outer fields; None values are skipped.

    Usage:
        with log_context(command="index", store=entry.id):
            await worker.drain()
    """
    merged = {**_context.get(), **{k: str(v) for k, v in fields.items() if v is not None}}
    token = _context.set(merged)
    try:
        yield
    finally:
        _context.reset(token)


def current_context() -> dict[str, str]:
    return dict(_context.get())


class ContextFilter(logging.Filter):
    """Copies the active ``log_context`` fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.glimpse_context = current_context()
        return True


class GlimpseFormatter(logging.Formatter):
    """Formatter with optional ANSI colors, short logger names and context."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, include_timestamp: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        parts = []

        if self.include_timestamp:
            timestamp = datetime.fromtimestamp(record.created, UTC).strftime("%Y-%m-%d %H:%M:%S")
            parts.append(f"[{timestamp}]")

        level = f"{record.levelname:8}"
        if self.use_colors and record.levelname in self.COLORS:
            level = f"{self.COLORS[record.levelname]}{level}{self.RESET}"
        parts.append(level)

        name = record.name.removeprefix(f"{ROOT_LOGGER_NAME}.")
        parts.append(f"[{name:24}]")

        context = getattr(record, "glimpse_context", None)
        if context:
            parts.append("{" + " ".join(f"{k}={v}" for k, v in context.items()) + "}")

        parts.append(record.getMessage())

        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))

        return " ".join(parts)


def setup_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    log_dir: str | Path | None = None,
    console_output: bool = True,
    file_output: bool = True,
    log_filename: str = "glimpse.log",
) -> None:
    """Configure the ``glimpse`` logger, replacing any earlier handlers.

    Console output goes to stderr so command output on stdout (``export``)
    stays machine-readable.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level))
    root_logger.propagate = False

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = []
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(GlimpseFormatter(use_colors=sys.stderr.isatty()))
        handlers.append(console_handler)

    if file_output and log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path / log_filename, encoding="utf-8")
        file_handler.setFormatter(GlimpseFormatter(use_colors=False))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(getattr(logging, level))
        handler.addFilter(ContextFilter())
        root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``glimpse`` namespace (``"cli"`` -> ``glimpse.cli``)."""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_operation(logger: logging.Logger, operation: str, details: dict | None = None) -> None:
    """Log a completed operation with optional details."""
    if details:
        logger.info(f"{operation}: " + ", ".join(f"{k}={v}" for k, v in details.items()))
    else:
        logger.info(operation)


def log_error(logger: logging.Logger, operation: str, error: Exception) -> None:
    """Log a failed operation with its traceback."""
    logger.error(f"FAILED {operation}: {type(error).__name__}: {error}", exc_info=error)
