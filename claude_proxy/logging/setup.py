"""Logging configuration for the proxy."""

import logging
import os
import sys

LOGGER_NAME = "claude-proxy"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: str | int | None) -> int:
    if level is None:
        level = os.getenv("CLAUDE_PROXY_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    # getLevelName returns a string for unknown names
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Set up the proxy logger with a stdout handler."""
    logger = logging.getLogger(LOGGER_NAME)
    resolved = _resolve_level(level)
    logger.setLevel(resolved)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(console_handler)

    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
