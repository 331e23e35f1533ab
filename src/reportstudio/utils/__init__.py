"""Utility helpers shared across the report studio packages."""

from .logging import get_log_path, get_logger, setup_logging, setup_logging_from_settings

__all__ = ["setup_logging", "setup_logging_from_settings", "get_logger", "get_log_path"]
