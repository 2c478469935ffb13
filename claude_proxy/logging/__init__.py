"""Logging module for the proxy."""

from .setup import LOG_DATE_FORMAT, LOG_FORMAT, LOGGER_NAME, logger, setup_logging

__all__ = [
    "LOG_DATE_FORMAT",
    "LOG_FORMAT",
    "LOGGER_NAME",
    "logger",
    "setup_logging",
]
