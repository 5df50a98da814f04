"""Logging configuration for model-audit."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from colorama import Fore, Style, init as colorama_init

from .exceptions import ModelAuditException

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DEFAULT_FORMAT_NO_TS = "%(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formatter that adds structured context to log records."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured context."""
        if record.exc_info and isinstance(record.exc_info[1], ModelAuditException):
            exc = record.exc_info[1]
            for key, value in exc.context.items():
                setattr(record, f"ctx_{key}", value)

        return super().format(record)


class ColorFormatter(StructuredFormatter):
    """Structured formatter that colours the whole line by level."""

    COLORS = {
        logging.DEBUG: Style.DIM + Fore.BLUE,
        logging.INFO: Fore.CYAN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Style.BRIGHT + Fore.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, "")
        message = super().format(record)
        if color:
            return f"{color}{message}{Style.RESET_ALL}"
        return message


def color_enabled() -> bool:
    """Return whether coloured console output should be used."""
    return sys.stderr.isatty() and os.getenv("NO_COLOR") is None


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    use_color: bool = False,
) -> None:
    """Configure logging for model-audit.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        format_string: Custom format string (uses default if None)
        include_timestamp: Whether to include timestamps in logs
        use_color: Colour console lines by level
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    if format_string is None:
        format_string = DEFAULT_FORMAT if include_timestamp else DEFAULT_FORMAT_NO_TS

    console_formatter: logging.Formatter
    if use_color:
        colorama_init()
        console_formatter = ColorFormatter(format_string)
    else:
        console_formatter = StructuredFormatter(format_string)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(numeric_level)
    root.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter(format_string))
        file_handler.setLevel(numeric_level)
        root.addHandler(file_handler)


__all__ = [
    "StructuredFormatter",
    "ColorFormatter",
    "color_enabled",
    "configure_logging",
]
