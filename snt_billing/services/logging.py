"""Logging configuration for the billing API server and CLI.

Provides dual output (stdout + file) with configurable level via LOG_LEVEL env var.
Default: INFO. Set LOG_LEVEL=WARNING for production, DEBUG for verbose output.
Import and rollback operations log one line per batch, so the file doubles
as a lightweight audit trail next to the audit_logs table.
"""

import logging
import os
import sys
from pathlib import Path
from typing import TextIO

# Map string level names to logging constants
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level(level_name: str | None = None) -> int:
    """Resolve a logging level from a name or the LOG_LEVEL environment variable.

    Args:
        level_name: Explicit level name; falls back to LOG_LEVEL when None

    Returns:
        Logging level constant (default: INFO)
    """
    level_str = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    return LOG_LEVEL_MAP.get(level_str, logging.INFO)


def setup_server_logging(
    log_file: str | None = "logs/server.log",
    level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Configure root logger for the API server and CLI.

    Args:
        log_file: Path to log file; None disables the file handler
        level: Level name overriding LOG_LEVEL
        stream: Console stream, stdout by default; the CLI passes stderr

    Behavior:
        - Sets up all loggers to output to the console stream and, when configured, to a file
        - ISO format timestamps for consistency
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    log_level = get_log_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove any existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
