# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Logging setup for kitwe."""

import logging
import sys
from enum import Enum

import errorhandler


class VerbosityLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    level: VerbosityLevel | str,
    error_handler: errorhandler.ErrorHandler | None = None,
) -> None:
    """Configure the root logger.

    Replaces any existing handlers with a single stderr stream handler at the
    requested level. When an error handler is given it is reset so that
    ``error_handler.fired`` only reflects errors logged from now on.

    Args:
        level: Minimum level to emit
        error_handler: Tracks whether anything at ERROR or above was logged
    """
    level_name = VerbosityLevel(level).value
    log_level = getattr(logging, level_name)

    logger = logging.getLogger()
    for handler in list(logger.handlers):
        # ErrorHandler installs itself on the root logger
        if not isinstance(handler, errorhandler.ErrorHandler):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(log_level)
    logger.addHandler(handler)
    logger.setLevel(log_level)

    if error_handler is not None:
        if error_handler not in logger.handlers:
            logger.addHandler(error_handler)
        error_handler.reset()
