"""Structured logging configuration for graphcalc."""

import logging
import sys
from datetime import datetime
from typing import Optional


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs structured log entries with timestamp, module, level, and message."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).isoformat()
        line = f"{timestamp} [{record.levelname}] {record.name}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: str = "WARNING", log_file: Optional[str] = None
) -> logging.Logger:
    """Set up structured logging for the engine.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path to write logs (if None, logs to stderr)

    Returns:
        Configured root logger of the package
    """
    logger = logging.getLogger("graphcalc")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(StructuredFormatter())
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "graphcalc") -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Logger name (typically module name)

    Returns:
        Logger instance under the ``graphcalc`` namespace
    """
    return logging.getLogger(f"graphcalc.{name}")
