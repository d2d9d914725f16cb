"""Logging configuration for omni-release.

Provides centralized logging with secret redaction to ensure API tokens
are never written to the console or log files.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional


# Secret patterns to redact from logs
SECRET_PATTERNS = [
    # Authorization headers
    (re.compile(r'(Bearer\s+)[^\s,"\'}\]]+', re.IGNORECASE), r'\1[REDACTED]'),
    # GitHub personal access / app / OAuth tokens
    (re.compile(r'\b(gh[pousr]_)[A-Za-z0-9]{20,}'), r'\1[REDACTED]'),
    (re.compile(r'\bgithub_pat_[A-Za-z0-9_]{20,}'), 'github_pat_[REDACTED]'),
    # token=... in query strings or key/value dumps
    (re.compile(r"(token['\"\s:=]+)[^\s,}\]&'\"]+", re.IGNORECASE), r'\1[REDACTED]'),
]


class SecretRedactingFormatter(logging.Formatter):
    """Custom formatter that redacts secrets from log messages."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record, redacting any secrets."""
        message = super().format(record)
        for pattern, replacement in SECRET_PATTERNS:
            message = pattern.sub(replacement, message)
        return message


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True
) -> logging.Logger:
    """
    Configure application logging with secret redaction.

    Console output goes to stderr so that stdout stays reserved for
    the JSON documents printed by the CLI.

    Args:
        level: Logging level (default INFO)
        log_file: Optional file path for log output
        console: Whether to output to console (default True)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("omni_release")
    logger.setLevel(level)

    # Clear any existing handlers
    logger.handlers.clear()

    formatter = SecretRedactingFormatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "omni_release") -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default is app logger)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
