"""
BudgetBot - Logging
====================
Logger factory shared by every BudgetBot module.

Level resolution, first match wins:
  1. explicit ``level`` argument
  2. ``settings.LOG_LEVEL``
  3. ``settings.ENV``: ``"dev"`` → DEBUG, ``"prod"`` → WARNING

Records go to stderr (answers stream on stdout) and, when
``settings.LOG_FILE`` is set, are appended to that file as well.

Usage:
    from budgetbot.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[INGEST] 12 unit(s) stored.")
"""

import logging
import sys

from budgetbot.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}

_FORMATTER = logging.Formatter(fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


def _default_level() -> int:
    if settings.LOG_LEVEL is not None:
        return logging.getLevelName(settings.LOG_LEVEL)
    return _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)


_handlers: list[logging.Handler] = []


def _shared_handlers() -> list[logging.Handler]:
    # One stream (and file) handle for all loggers; levels are set per logger
    if not _handlers:
        _handlers.append(logging.StreamHandler(sys.stderr))
        if settings.LOG_FILE is not None:
            settings.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            _handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))
        for handler in _handlers:
            handler.setFormatter(_FORMATTER)
    return _handlers


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the named logger, attaching BudgetBot handlers on first use.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit level override for this logger.

    Returns:
        A configured ``logging.Logger`` instance.
    """
    logger = logging.getLogger(name)

    # Configure once per name
    if not logger.handlers:
        resolved_level = level if level is not None else _default_level()
        logger.setLevel(resolved_level)
        for handler in _shared_handlers():
            logger.addHandler(handler)
        logger.propagate = False

    return logger
