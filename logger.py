from __future__ import annotations

import logging
from logging import Logger

from config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(name: str = "main") -> Logger:
    """Set up root logging for the API process and return the ``name`` logger.

    Module loggers (``ledger``, ``billing``, ``repository`` ...) propagate to
    the root handler installed here.
    """
    level = logging.DEBUG if get_settings().is_debug else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # pymongo logs every server heartbeat at DEBUG
    logging.getLogger("pymongo").setLevel(max(level, logging.INFO))
    return logging.getLogger(name)
