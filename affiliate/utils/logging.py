"""
Logging setup.

Configures loguru sinks with rotation and retention policies.
"""

import sys

from loguru import logger

from affiliate.config.settings import Settings, settings as default_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure logger with stderr output and optional file rotation."""
    settings = settings or default_settings

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)

    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
            level=settings.log_level,
            encoding="utf-8",
        )

    logger.info(
        "Logging configured",
        extra={"level": settings.log_level, "file": settings.log_file},
    )
