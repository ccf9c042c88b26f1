"""
Logging configuration and utilities.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _console_handler(formatter: logging.Formatter) -> logging.Handler:
    # Bind the interpreter's original stderr so records emitted while a
    # capture scope is active never end up in the captured text.
    handler = logging.StreamHandler(sys.__stderr__)
    handler.setFormatter(formatter)
    return handler


def _file_handler(log_file: Path,
                  formatter: logging.Formatter,
                  max_file_size_mb: int = 10,
                  backup_count: int = 5) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=max_file_size_mb * 1024 * 1024,
        backupCount=backup_count
    )
    handler.setFormatter(formatter)
    return handler


def setup_logger(name: str,
                 log_file: Optional[Path] = None,
                 level: str = "INFO",
                 format_string: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with console and optional file handlers.

    Args:
        name: Logger name
        log_file: Optional log file path
        level: Logging level
        format_string: Log format string

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
    logger.addHandler(_console_handler(formatter))

    if log_file:
        logger.addHandler(_file_handler(log_file, formatter))

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


def setup_root_logger(log_file: Optional[Path] = None,
                      level: str = "INFO",
                      format_string: Optional[str] = None,
                      max_file_size_mb: int = 10,
                      backup_count: int = 5):
    """
    Set up the root logger for the application.

    Args:
        log_file: Optional log file path
        level: Logging level
        format_string: Log format string
        max_file_size_mb: Size at which the log file is rotated
        backup_count: Number of rotated log files to keep
    """
    root_logger = logging.getLogger()

    # Clear any existing handlers
    root_logger.handlers.clear()

    root_logger.setLevel(getattr(logging, level.upper()))

    formatter = logging.Formatter(
        format_string
        or "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    )

    root_logger.addHandler(_console_handler(formatter))

    if log_file:
        root_logger.addHandler(
            _file_handler(log_file, formatter, max_file_size_mb, backup_count)
        )

    # Set levels for noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
