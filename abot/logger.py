"""Logging helpers for abot.

In the full-screen UI log records must never be written to the terminal
directly; ``PaneLogHandler`` turns them into events for the log pane instead.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional, Union

__all__ = [
    "LOG_LEVELS",
    "PaneLogHandler",
    "get_logger",
    "set_level",
    "setup_logger",
]

DEFAULT_LOG_FILE = Path("~/.abot/logs/abot.log").expanduser()
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
PANE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024  # 5MB
LOG_BACKUP_COUNT = 3
ROOT_LOGGER = "abot"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class PaneLogHandler(logging.Handler):
    """Forward formatted records to a callback (the session event queue)."""

    def __init__(self, post: Callable[[int, str], None], level: int = logging.NOTSET):
        super().__init__(level)
        self._post = post
        self.setFormatter(logging.Formatter(PANE_FORMAT, datefmt="%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._post(record.levelno, self.format(record))
        except Exception:
            self.handleError(record)


def setup_logger(
    name: str = ROOT_LOGGER,
    level: Union[str, int] = "info",
    log_file: Union[str, Path, bool, None] = None,
    *,
    console: bool = True,
    console_level: Union[str, int, None] = None,
    pane_post: Optional[Callable[[int, str], None]] = None,
) -> logging.Logger:
    """Configure and return the project logger.

    Args:
        name: Logger name; modules log through children of ``abot``.
        level: Level name (``debug``/``info``/``warning``/``error``) or number.
        log_file: File logging target.
            - ``None`` or ``True``: use ``~/.abot/logs/abot.log``
            - ``False``: disable file logging
            - ``str``/``Path``: use a custom log file path
        console: Attach a stderr handler. Off in the full-screen UI.
        console_level: Threshold of the stderr handler only (file keeps ``level``).
        pane_post: When given, records are also forwarded to the log pane.
    """
    logger = logging.getLogger(name)
    resolved = _resolve_level(level)

    # Reconfigure safely if setup_logger is called more than once.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(resolved)
    logger.propagate = False

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        if console_level is not None:
            console_handler.setLevel(_resolve_level(console_level))
        logger.addHandler(console_handler)

    if pane_post is not None:
        logger.addHandler(PaneLogHandler(pane_post))

    log_path = _resolve_log_path(log_file)
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    # Keep third-party libraries quiet unless they emit warnings or errors.
    logging.getLogger("litellm").setLevel(logging.WARNING)
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger


def set_level(level: Union[str, int], name: str = ROOT_LOGGER) -> int:
    """Change the project log level at runtime. Returns the numeric level."""
    resolved = _resolve_level(level)
    logging.getLogger(name).setLevel(resolved)
    return resolved


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name without changing its configuration."""
    return logging.getLogger(name)


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    try:
        return LOG_LEVELS[str(level).strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level}") from None


def _resolve_log_path(log_file: Union[str, Path, bool, None]) -> Path | None:
    """Translate ``log_file`` input to a concrete path or disable file logging."""
    if log_file is False:
        return None
    if log_file is None or log_file is True:
        return DEFAULT_LOG_FILE
    return Path(log_file).expanduser()
