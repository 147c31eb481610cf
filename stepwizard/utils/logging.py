"""Logging setup for applications embedding the wizard engine."""

import logging
import os
import sys
from typing import Optional

LOG_LEVEL_ENV = 'STEPWIZARD_LOG_LEVEL'
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(log_level: Optional[str] = None) -> None:
    """Configure logging for the stepwizard loggers.

    Only the first call has an effect.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
            Falls back to $STEPWIZARD_LOG_LEVEL, then INFO.
    """
    if hasattr(configure_logging, "has_run"):
        return

    if log_level is None:
        log_level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger = logging.getLogger("stepwizard")
    for existing in logger.handlers[:]:
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(numeric_level)
    logger.propagate = False

    configure_logging.has_run = True
