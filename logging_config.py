"""Relay process logging setup.

- Console handler always (container platforms collect stderr).
- UTF-8 rotating file handler only when the config names a log file.
- Idempotent: handlers are found by name and reconfigured, never duplicated.

Usage:
    from logging_config import setup_logging
    from relay.config import get_config
    setup_logging(get_config())

Levels and the log file come from RelayConfig (RELAY_LOG_LEVEL / RELAY_LOG_FILE
are parsed there, not here).
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relay.config import RelayConfig

_FILE_HANDLER_NAME = "relay_file"
_CONSOLE_HANDLER_NAME = "relay_console"

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 5


def _find_handler(root: logging.Logger, name: str) -> logging.Handler | None:
    for handler in root.handlers:
        if handler.name == name:
            return handler
    return None


def _drop_handler(root: logging.Logger, handler: logging.Handler) -> None:
    root.removeHandler(handler)
    handler.close()


def _resolve_path(log_file: str) -> Path:
    path = Path(log_file)
    if not path.is_absolute():
        path = Path.cwd() / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _sync_file_handler(root: logging.Logger, log_file: str) -> Path | None:
    """Make the named file handler match log_file ("" removes it)."""
    existing = _find_handler(root, _FILE_HANDLER_NAME)
    if not log_file:
        if existing is not None:
            _drop_handler(root, existing)
        return None

    path = _resolve_path(log_file)
    if existing is not None:
        if getattr(existing, "baseFilename", None) == str(path):
            return path
        # 切换了日志文件
        _drop_handler(root, existing)

    handler = RotatingFileHandler(
        str(path),
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.name = _FILE_HANDLER_NAME
    root.addHandler(handler)
    return path


def setup_logging(config: RelayConfig) -> logging.Logger:
    """Configure the root logger from config.log_level / config.log_file.

    Returns the root logger.
    """
    level = logging._nameToLevel.get(config.log_level.strip().upper(), logging.INFO)
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    console = _find_handler(root, _CONSOLE_HANDLER_NAME)
    if console is None:
        console = logging.StreamHandler()
        console.name = _CONSOLE_HANDLER_NAME
        root.addHandler(console)

    log_path = _sync_file_handler(root, config.log_file)

    for handler in root.handlers:
        if handler.name in (_CONSOLE_HANDLER_NAME, _FILE_HANDLER_NAME):
            handler.setFormatter(fmt)
            handler.setLevel(level)

    # websockets logs each connection at INFO
    logging.getLogger("websockets").setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).info(
        "Logging initialized | level=%s file=%s",
        logging.getLevelName(level),
        log_path,
    )
    return root
