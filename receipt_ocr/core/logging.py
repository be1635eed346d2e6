"""
Loguru configuration shared by the API and command-line entry points.
"""

import sys
from loguru import logger
from .config import settings


def setup_logging(level: str | None = None):
    """
    Replace loguru's default sink with a single stderr sink.

    Structured context passed as keyword arguments (logger.info("...", token=3))
    ends up in ``record["extra"]`` and is rendered after the message.

    Args:
        level: Minimum level to emit (defaults to LOG_LEVEL setting)

    Returns:
        The configured loguru logger
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
            "<level>{message}</level> {extra}"
        ),
        backtrace=False,
        diagnose=False,
    )
    return logger
