from __future__ import annotations

import logging
import sys
from typing import TextIO

from slideharvest.config import LoggingSettings

PACKAGE_LOGGER = "slideharvest"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

_HANDLER_MARKER = "_slideharvest_handler"


def resolve_log_level(name: str, *, verbose: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(settings: LoggingSettings, *, verbose: bool = False, stream: TextIO | None = None) -> logging.Logger:
    """Send slideharvest log records to stderr at the configured level.

    Only the package logger is configured; the root logger belongs to
    whoever embeds the library. Repeated calls replace the previous handler.
    `verbose` forces DEBUG, which includes every external tool command line.
    """

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    setattr(handler, _HANDLER_MARKER, True)
    package_logger.addHandler(handler)
    package_logger.setLevel(resolve_log_level(settings.level, verbose=verbose))
    return package_logger
