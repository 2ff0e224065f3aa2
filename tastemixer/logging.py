"""Logging setup for the ``tastemixer`` package loggers."""

from __future__ import annotations

import logging
import sys

from tastemixer.config import LoggingConfig

ROOT_LOGGER_NAME = "tastemixer"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_HANDLER_MARKER = "_tastemixer_handler"


def _build_handlers(log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARKER, True)
    return handlers


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Apply ``LOG_LEVEL``/``LOG_FILE`` to the package logger.

    Only handlers installed by a previous call are replaced, so repeated
    context builds do not duplicate output and host handlers are untouched.
    """

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = logging.getLevelName(config.level.upper())
    package_logger.setLevel(level if isinstance(level, int) else logging.INFO)

    for handler in list(package_logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            package_logger.removeHandler(handler)
            handler.close()
    for handler in _build_handlers(config.log_file):
        package_logger.addHandler(handler)
    return package_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
