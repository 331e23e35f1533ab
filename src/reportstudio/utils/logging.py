"""Logging setup for hosts embedding the report studio core.

Library modules only ever call ``logging.getLogger(__name__)``; a host
application calls :func:`setup_logging` (or :func:`setup_logging_from_settings`)
once at start-up to route those records to a rotating file.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..services.settings import StudioSettings

__all__ = ["setup_logging", "setup_logging_from_settings", "get_logger", "get_log_path"]

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LOG_DIR_ENV = "REPORTSTUDIO_LOG_DIR"
LOG_LEVEL_ENV = "REPORTSTUDIO_LOG_LEVEL"

_DEFAULT_LOG_DIR = Path.home() / ".reportstudio" / "logs"
_LOG_FILE_NAME = "reportstudio.log"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "jsonschema")
_active_log_path: Path | None = None


def setup_logging(
    level: int | str | None = None,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 2_000_000,
    backup_count: int = 5,
    force: bool = False,
) -> Path:
    """Send log records to ``reportstudio.log`` and, optionally, to stderr.

    ``level`` may be a number or a level name; when omitted it is read from
    ``REPORTSTUDIO_LOG_LEVEL`` and defaults to ``INFO``. The log directory
    comes from ``log_dir``, then ``REPORTSTUDIO_LOG_DIR``, then
    ``~/.reportstudio/logs``. Once configured, further calls return the
    active log path unless ``force`` is given.
    """

    global _active_log_path
    if _active_log_path is not None and not force:
        return _active_log_path

    resolved_level = _resolve_level(level)
    directory = _resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / _LOG_FILE_NAME

    logging.basicConfig(
        level=resolved_level,
        handlers=_build_handlers(log_path, resolved_level, console, max_bytes, backup_count),
        force=True,
    )
    logging.captureWarnings(True)
    quiet_level = max(resolved_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    _active_log_path = log_path
    logging.getLogger(__name__).debug("Logging to %s at level %s", log_path, resolved_level)
    return log_path


def setup_logging_from_settings(settings: "StudioSettings", **kwargs: Any) -> Path:
    """Configure logging at ``DEBUG`` when ``settings.debug_logging`` is on, else ``INFO``."""

    level = logging.DEBUG if settings.debug_logging else logging.INFO
    return setup_logging(level, **kwargs)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`setup_logging`."""

    return _active_log_path


def _build_handlers(
    log_path: Path,
    level: int,
    console: bool,
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
