"""
Logging configuration shared by every layer of the application.

Modules obtain their logger with:

    from app.shared.utils.logging_config import get_logger
    logger = get_logger(__name__)
"""

import logging
import os
import sys
from typing import Optional

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
ROOT_LOGGER_NAME = "app"

_configured = False


def setup_logging(level: Optional[str] = None, log_format: str = DEFAULT_LOG_FORMAT) -> None:
    """
    Configure the application logger once.

    Args:
        level: Log level name; falls back to CASH_FLOW_LOG_LEVEL, then INFO
        log_format: Format string for the stream handler
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("CASH_FLOW_LOG_LEVEL", "INFO")).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(log_format))

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)
    root.propagate = True

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger under the application namespace."""
    setup_logging()
    return logging.getLogger(name)
