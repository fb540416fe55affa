# modregistry/core/logging/__init__.py
from __future__ import annotations

from .context import setLogContext, clearLogContext, getLogContext, logContext
from .setup import configureLogging, QUIET_LOGGERS

__all__ = [
    "configureLogging",
    "QUIET_LOGGERS",
    "setLogContext",
    "clearLogContext",
    "getLogContext",
    "logContext",
]
