"""Logging for pkms.

Every component logs through a child of the ``pkms`` logger (see
get_logger), so handlers are attached once, to that logger, by
configure_logging() at process start.
"""

import logging
import logging.handlers
import os
from typing import List, Optional

ROOT_LOGGER = "pkms"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _parse_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return value


def _handlers(name: str, log_dir: str, file_logging: bool, console_logging: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, f"{name}.log"),
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
            )
        )
    if console_logging:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str = ROOT_LOGGER,
    log_dir: str = "/var/log/pkms",
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
) -> logging.Logger:
    """Attach console and/or rotating file handlers to a logger.

    Calling it again only changes the level; handlers are added once.

    Args:
        name: Logger name, "pkms" to cover the whole package
        log_dir: Directory for ``<name>.log`` when file logging is on
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: Record format; DEFAULT_FORMAT when omitted
        date_format: Timestamp format; ISO 8601 when omitted
        file_logging: Write to a rotating file
        console_logging: Write to stderr

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT, datefmt=date_format or ISO_DATE_FORMAT)
    for handler in _handlers(name, log_dir, file_logging, console_logging):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_logging(settings=None) -> logging.Logger:
    """Configure the ``pkms`` logger from Settings (the cached settings by default)."""
    if settings is None:
        from pkms.core.config import get_settings
        settings = get_settings()
    return setup_logger(
        level=settings.log_level,
        log_dir=settings.log_dir,
        file_logging=settings.file_logging,
    )


def get_logger(name: str) -> logging.Logger:
    """Component logger under the pkms namespace, e.g. get_logger("policy_store")."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
