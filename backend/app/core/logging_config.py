"""Centralized logging configuration for the backend."""

import logging
import sys
from typing import Optional

from app.core.config import settings

ROOT_LOGGER_NAME = "photo-prompt"

_STRUCTURED_FORMAT = (
    "%(asctime)s | %(name)s | %(levelname)-8s | "
    "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
)
_SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: Optional[str] = None,
) -> logging.Logger:
    """
    Configure a logger with a single stdout handler.

    Args:
        name: Logger name (defaults to "photo-prompt")
        level: Log level override (defaults to ``settings.log_level``)
        format_type: "structured" or "simple" (defaults to ``settings.log_format``)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    wanted = (level or settings.log_level or "INFO").upper()
    logger.setLevel(getattr(logging, wanted, logging.INFO))

    # Avoid duplicate handlers when called repeatedly
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        chosen = (format_type or settings.log_format or "structured").lower()
        if chosen == "structured":
            formatter = logging.Formatter(_STRUCTURED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        else:
            formatter = logging.Formatter(_SIMPLE_FORMAT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """Return the backend logger, or a child of it for ``component``."""
    root = setup_logger()
    if not component:
        return root
    child = root.getChild(component)
    child.setLevel(logging.NOTSET)
    child.propagate = True
    return child
