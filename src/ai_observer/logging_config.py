"""Logging setup for the receiver and importer."""

import logging

from ai_observer.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> logging.Logger:
    """Initialise the root logger with the configured level."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    logger = logging.getLogger("ai_observer")
    logger.setLevel(level)
    logger.debug("Logging configured at %s", settings.log_level)
    return logger


__all__ = ["LOG_FORMAT", "configure_logging"]
