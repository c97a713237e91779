"""Logging setup for processes that run the connector.

Library modules only create module loggers; the embedding process calls
`configure_logging` once with the ``app`` section of `Settings`.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import List

from ferret.config import AppConfig

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"
# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(app: AppConfig) -> None:
    """Route ``ferret`` logs to stdout and, if configured, a rotating file."""
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if app.log_file:
        handlers.append(
            RotatingFileHandler(
                app.log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
            )
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(_level(app.log_level))
    root_logger.handlers = []
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
