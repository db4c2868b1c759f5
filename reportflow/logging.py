"""Logger factory shared by the service modules."""

import logging

from reportflow.config import settings


def get_logger(name: str) -> logging.Logger:
    """Return a named logger with the service's stream handler attached.

    Args:
        name: Logger name (usually a dotted component name)

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(settings.log_level.upper())
    return logger
