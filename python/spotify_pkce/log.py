"""Logging setup for spotify_pkce.

Modules log through ``logging.getLogger(__name__)``; this only decides
where the ``spotify_pkce`` hierarchy ends up.
"""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "spotify_pkce"
LOG_FORMAT = "%(name)s - %(levelname)s - %(message)s"


def configure(level: int | str = logging.WARNING) -> logging.Logger:
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Only add handler if none exists
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
