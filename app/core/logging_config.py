"""Logging setup shared by the API process and the Celery worker."""
import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the ``app`` logger hierarchy.

    Modules log through ``logging.getLogger(__name__)``; everything under
    ``app.`` ends up on stdout with a single handler.
    """
    logger = logging.getLogger("app")
    logger.setLevel(level.upper())

    # Remove existing handlers to avoid duplicates on reload
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
