"""Logging setup for scripts and the worker process.

Library modules only create loggers with logging.getLogger(__name__);
handlers are installed here, once, by the entry point.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: int = logging.INFO) -> None:
    """Install a single stderr handler on the root logger.

    Existing root handlers are removed to prevent duplicate lines when
    called more than once.

    Args:
        level: Root log level.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    logging.getLogger("replica").setLevel(level)
