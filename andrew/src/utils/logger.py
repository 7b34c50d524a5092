"""
Andrew - Logging
=================
Logger factory shared by every Andrew module.  Each named logger gets a
single stdout handler with the pipe-separated format below and does not
propagate to the root logger, so uvicorn's own handlers never print an
Andrew line twice.

Level resolution (first match wins):
  1. the ``level`` argument of ``get_logger``
  2. ``settings.LOG_LEVEL``
  3. ``settings.ENV``: ``"dev"`` → DEBUG, ``"prod"`` → WARNING

Messages carry a bracketed component tag so one grep isolates a stage::

    2025-01-01 12:00:00 | INFO     | andrew.src.core.retrieval | [RETRIEVAL] Initialised with 7 chunk(s) in 0.4ms.

Usage:
    from andrew.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[CHAT] Answer from %s", model_name)
"""

import logging
import sys

from andrew.config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ENV_LEVELS = {"dev": logging.DEBUG, "prod": logging.WARNING}


def resolve_level(level: int | str | None = None) -> int:
    """Map an explicit level, ``LOG_LEVEL`` or ``ENV`` to a ``logging`` level number."""
    chosen = level if level is not None else settings.LOG_LEVEL
    if chosen is None:
        return _ENV_LEVELS.get(settings.ENV, logging.INFO)
    if isinstance(chosen, int):
        return chosen
    return logging.getLevelName(chosen.upper())


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """
    Return the logger *name*, attaching the Andrew stdout handler on first use.

    Args:
        name:  Usually ``__name__`` of the calling module.
        level: Level override (number or name such as ``"INFO"``).

    Returns:
        The configured ``logging.Logger``.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = resolve_level(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
