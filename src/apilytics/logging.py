"""Diagnostic logging channel for failed metric deliveries."""
from __future__ import annotations

import logging
import sys

LOGGER_NAME = "apilytics"

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_diagnostics(production: bool, level: str = "DEBUG") -> None:
    """Make delivery diagnostics visible outside production.

    When the host has not configured root logging, the ``apilytics`` logger
    gets its own stderr handler and stops propagating; otherwise records
    propagate to the host's handlers and only the level is adjusted. Nothing
    is touched in production, where the reporter never emits diagnostics in
    the first place. Other loggers and their handlers are left alone.
    """

    global _configured
    if production:
        return

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if _configured or logging.getLogger().handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    # No double output once the host adds a root handler later.
    logger.propagate = False
    _configured = True
