"""Logging configuration for shiptrack."""

import logging
import sys

# Logger name for the application; module loggers live underneath it
LOGGER_NAME = "shiptrack"

# The supervisor logs every poll of every trial job at DEBUG
POLL_LOGGER_NAME = f"{LOGGER_NAME}.tracking.supervisor"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def _level(name: str | None, default: int) -> int:
    if name is None:
        return default
    return getattr(logging, name.upper(), default)


def configure_logging(
    level: str | None = None,
    *,
    poll_level: str | None = None,
    format_string: str = LOG_FORMAT,
    date_format: str = DATE_FORMAT,
) -> logging.Logger:
    """Configure and return the main application logger.

    An auto-detect run can poll dozens of carriers, so per-poll lines are
    kept out of DEBUG output unless ``poll_level`` asks for them.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to INFO if not specified.
        poll_level: Level for the poll supervisor logger. Defaults to the
               application level, but never below INFO.
        format_string: Format string for log messages.
        date_format: Format string for timestamps.

    Returns:
        The configured application logger.
    """
    global _configured

    logger = logging.getLogger(LOGGER_NAME)
    log_level = _level(level, logging.INFO)
    logger.setLevel(log_level)

    logging.getLogger(POLL_LOGGER_NAME).setLevel(
        _level(poll_level, max(log_level, logging.INFO))
    )

    if not _configured:
        logger.handlers.clear()

        formatter = logging.Formatter(format_string, datefmt=date_format)

        # Handler passes everything; loggers do the filtering
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.NOTSET)
        console_handler.setFormatter(formatter)

        logger.addHandler(console_handler)
        logger.propagate = False

        _configured = True

    return logger


def reset_logging() -> None:
    """Reset logging configuration (useful for testing)."""
    global _configured

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    logging.getLogger(POLL_LOGGER_NAME).setLevel(logging.NOTSET)

    _configured = False
