"""
Logging setup for the tutorials service.
Console output only; uvicorn's own loggers are left alone.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER = "campus_tutorials"


def setup_logger(level: str | int = logging.INFO) -> logging.Logger:
    """
    Configure the package logger with a stdout handler.

    Args:
        level: Logging level name or number

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on reload
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(console_handler)
    logger.propagate = False

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Child logger of the package logger (module names already are)."""
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(name)
