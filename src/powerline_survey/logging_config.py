"""Logging setup shared by the server entry points."""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s service=%(name)s level=%(levelname)s msg=%(message)s"


def setup_logging(service: str, level: str | int = "INFO") -> logging.Logger:
    """Configure stdout logging for the service and return its logger.

    Safe to call more than once; ``basicConfig`` only installs a handler the first time.
    """
    lvl = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    logging.basicConfig(level=lvl, format=_FORMAT)
    logger = logging.getLogger(service)
    logger.setLevel(lvl)
    return logger
