"""
Logging configuration.

TaskPulse logs through loguru everywhere; this module only replaces the
default sink with one honoring the configured level and format.
"""

import sys

from loguru import logger

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Install the process log sink.

    Args:
        level: Minimum log level ("DEBUG", "INFO", ...)
        json_logs: Emit one JSON object per record instead of colored text
    """
    logger.remove()
    if json_logs:
        logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        logger.add(sys.stderr, level=level.upper(), format=TEXT_FORMAT, colorize=True)

    logger.debug(f"Logging configured (level={level.upper()}, json={json_logs})")
