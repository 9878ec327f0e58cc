"""Console logging setup for the consilium CLI."""

from __future__ import annotations

import logging

_LOGGER_NAME = "consilium"


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Attach a single stderr handler to the package logger.

    ``verbose`` lowers the threshold to DEBUG, otherwise only warnings and
    errors reach the console.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated invocations in one process must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[consilium] %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    return logger
