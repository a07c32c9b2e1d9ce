"""Stderr diagnostics for the mii logger hierarchy."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

LOGGER_NAME = "mii"
LOG_FORMAT = "[mii] %(levelname)s : %(message)s"


class ConsoleHandler(logging.StreamHandler):
    """Stream handler installed by ``configure_logging``."""


def configure_logging(verbosity: int = 0, stream: TextIO | None = None) -> logging.Logger:
    """Install one stderr handler on the ``mii`` logger.

    Verbosity 0 reports warnings, 1 adds info and 2 or more adds debug output.
    Calling again replaces the previously installed handler.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, ConsoleHandler):
            logger.removeHandler(handler)
    handler = ConsoleHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
