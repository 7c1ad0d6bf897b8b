"""Common utilities for pkms."""

from .logger import configure_logging, setup_logger, get_logger
from .config import load_catalog_config, load_config

__all__ = ["configure_logging", "get_logger", "load_catalog_config", "load_config", "setup_logger"]
