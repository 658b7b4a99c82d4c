"""
Logging setup for the storefront edge service.

All modules obtain their logger via setup_logger(__name__). Handlers are
attached once to the package root logger so child loggers propagate to it.
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "[%(asctime)s][%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"
ROOT_LOGGER_NAME = "storefront"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """
    Attach the stdout handler to the package root logger.

    Args:
        level: Level name (DEBUG, INFO, ...). Falls back to LOG_LEVEL env var, then INFO.
    """
    global _configured

    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root.addHandler(handler)
        _configured = True


def setup_logger(name: str) -> logging.Logger:
    """
    Get a module logger under the storefront root logger.

    Args:
        name: Module name, usually __name__

    Returns:
        Logger instance
    """
    configure_logging()
    return logging.getLogger(name)
