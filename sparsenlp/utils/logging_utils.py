"""Logging helper shared by the package."""

import logging
import sys
from typing import Optional

_DEFAULT_LEVEL = logging.WARNING
_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Logger namespaced under ``sparsenlp``.

    A single stderr handler is attached the first time a given name is
    requested.

    Args:
        name: Usually ``__name__`` of the caller

    Returns:
        Configured logger
    """
    if name is None:
        name = "sparsenlp"
    if not name.startswith("sparsenlp"):
        name = f"sparsenlp.{name}"

    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(_DEFAULT_LEVEL)
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    return logger


def set_level(level: int, name: str = "sparsenlp") -> None:
    """Set the level of a package logger and its handlers."""
    logger = get_logger(name)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
