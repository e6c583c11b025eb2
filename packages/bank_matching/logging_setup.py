"""Logging for the ``bank_matching`` package.

Engine modules log through ``get_logger("bank_matching.<module>")`` and never
attach handlers. The package logger carries a ``NullHandler`` from import, so
an embedding application sees nothing unless it configures logging itself.

The CLI calls :func:`configure_logging` with the engine settings; the level
comes from ``EngineSettings.log_level`` (``BANK_MATCHING_LOG_LEVEL``), so all
environment parsing stays in :mod:`bank_matching.config`.
"""

from __future__ import annotations

import logging
import sys
from typing import IO

from .config import EngineSettings, load_settings

_PKG_LOGGER_NAME = "bank_matching"
_HANDLER_NAME = "bank_matching.console"
_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

logging.getLogger(_PKG_LOGGER_NAME).addHandler(logging.NullHandler())


def _console_handler(logger: logging.Logger) -> logging.Handler | None:
    for h in logger.handlers:
        if h.get_name() == _HANDLER_NAME:
            return h
    return None


def configure_logging(
    settings: EngineSettings | None = None,
    *,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Attach the console handler to the package logger and apply the level.

    Safe to call more than once: a second call re-applies the level to the
    existing handler, and only swaps its stream when ``stream`` is given.
    Records do not propagate to the root logger.

    Parameters
    ----------
    settings:
        Engine settings; read from the environment when omitted.
    stream:
        Destination for log lines. Defaults to ``sys.stderr`` on first
        configuration.

    Returns
    -------
    logging.Logger
        The configured ``bank_matching`` logger.
    """

    settings = settings or load_settings()
    level = logging.getLevelNamesMapping()[settings.log_level]
    logger = logging.getLogger(_PKG_LOGGER_NAME)

    handler = _console_handler(logger)
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    elif stream is not None and isinstance(handler, logging.StreamHandler):
        handler.setStream(stream)

    handler.setLevel(level)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
