"""
Logging configuration.

Console output goes to stderr so command output on stdout stays parseable;
a rotating file under config.logs_dir keeps the full run history.
"""

import logging
import logging.handlers
import sys
from typing import Iterable, Optional

from .config import config

# HTTP client libraries log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def _quiet(names: Iterable[str], level: int = logging.WARNING) -> None:
    for name in names:
        logging.getLogger(name).setLevel(level)


def setup_logging(logger_name: str = "aitelier", level: Optional[str] = None) -> logging.Logger:
    """
    Configure and return the package logger.

    Args:
        logger_name: Name of the logger; also names the log file
        level: Overrides config.log_level (e.g. "DEBUG" from --verbose)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    level = (level or config.log_level).upper()

    if logger.handlers:
        for handler in logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(level)
        return logger

    # Handlers filter by level; the file always keeps DEBUG detail.
    logger.setLevel(logging.DEBUG)
    _quiet(NOISY_LOGGERS)

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    config.logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        config.logs_dir / f"{logger_name}.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger
