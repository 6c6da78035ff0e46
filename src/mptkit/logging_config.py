"""
Logging configuration for the `mptkit` logger.

Importing the package never attaches handlers; call `setup_logging` from
scripts that want sampler progress on the console or in a file.
"""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """
    Send `mptkit` log records to stdout and, optionally, to `log_file`.

    Handlers from earlier calls are closed and replaced.
    """
    logger = logging.getLogger("mptkit")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_FORMAT, datefmt="%H:%M:%S")
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.info("Logging initialized.")
