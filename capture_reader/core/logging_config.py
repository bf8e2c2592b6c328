"""Root logging setup for the command line entry point."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 1024 * 1024
LOG_FILE_BACKUPS = 3

# Only interesting when something is broken.
DEFAULT_SUPPRESSED_LOGGERS = ("aiohttp.access", "asyncio")

_OWNER_ATTR = "_capture_reader_handler"


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'")
    return resolved


def _installed_handlers(root: logging.Logger) -> list[logging.Handler]:
    return [handler for handler in root.handlers if getattr(handler, _OWNER_ATTR, False)]


def _own(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    setattr(handler, _OWNER_ATTR, True)
    return handler


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = LOG_FILE_MAX_BYTES,
    backup_count: int = LOG_FILE_BACKUPS,
    suppressed_loggers: Iterable[str] = DEFAULT_SUPPRESSED_LOGGERS,
) -> None:
    """Install a console handler and optionally a rotating log file on the root logger.

    Calling again without ``force`` only changes the level. With ``force``
    the handlers installed by a previous call are closed and rebuilt;
    handlers added by anything else are left alone.
    """
    numeric_level = resolve_level(level)
    root = logging.getLogger()
    installed = _installed_handlers(root)

    if installed and not force:
        for handler in installed:
            handler.setLevel(numeric_level)
    else:
        for handler in installed:
            root.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
        if console:
            root.addHandler(_own(logging.StreamHandler(sys.stdout), numeric_level, formatter))
        if log_file:
            path = Path(log_file).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
            root.addHandler(_own(file_handler, numeric_level, formatter))

    root.setLevel(numeric_level)
    for name in suppressed_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["DEFAULT_SUPPRESSED_LOGGERS", "LOG_DATEFMT", "LOG_FORMAT", "configure_logging", "resolve_level"]
