"""Centralized logging configuration."""

import logging


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Get a configured logger instance."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_logging(level: str = "INFO") -> None:
    """Attach the standard handler to the package root logger.

    Module loggers created with ``logging.getLogger(__name__)`` propagate
    to it, so one call at process start is enough.
    """
    get_logger("loginshield", level)
