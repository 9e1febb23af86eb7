"""
ScanNorm - Logger Module

Shared package logger. Service modules use ``logging.getLogger(__name__)``
and inherit this logger's handler through the ``scannorm`` hierarchy.
"""

import logging
import sys

from scannorm.config import LOG_DATE_FORMAT, LOG_FORMAT, LOG_LEVEL, LOGGER_NAME


def setup_logger(name: str = LOGGER_NAME, level: int = LOG_LEVEL) -> logging.Logger:
    """Create (or fetch) the named package logger.

    A single stderr handler is attached the first time; repeated calls
    only adjust the level.

    Args:
        name: Logger name
        level: Logging level

    Returns:
        Configured logger
    """
    log = logging.getLogger(name)
    log.setLevel(level)

    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        log.addHandler(handler)
        log.propagate = False

    return log


def set_verbose(verbose: bool) -> None:
    """Switch the package logger between DEBUG and INFO."""
    setup_logger(level=logging.DEBUG if verbose else logging.INFO)


logger = setup_logger()
