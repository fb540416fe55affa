# modregistry/core/logging/setup.py
from __future__ import annotations
import logging
import sys

from modregistry.app.settings import githubToken, settings, settingsBool
from .formatters import DevFormatter, JsonFormatter, RedactingFormatter

__all__ = [
    "QUIET_LOGGERS",
    "configureLogging",
]



# Chatty libraries kept at WARNING; they still propagate to the redacting root handler
QUIET_LOGGERS = [
    "asyncio",
    "httpcore",
    "httpx",
]



def configureLogging(level: int | str | None = None, jsonOutput: bool | None = None) -> None:
    """
    Initiate the global logging configuration.

    - One stderr handler, so stdout stays reserved for command output
    - Human-readable lines by default, one-line JSON when `logging.json` is set
    - Token scrubbing on every rendered line
    """
    if level is None:
        level = str(settings("logging.level", "INFO"))
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if jsonOutput is None:
        jsonOutput = settingsBool("logging.json", False)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    inner: logging.Formatter = JsonFormatter() if jsonOutput else DevFormatter()

    consoleHandler = logging.StreamHandler(sys.stderr)
    consoleHandler.setLevel(level)
    consoleHandler.setFormatter(RedactingFormatter(inner, secrets=lambda: (githubToken(),)))
    root.addHandler(consoleHandler)

    # Per-logger tweaks (reduce noise)
    for name in QUIET_LOGGERS:
        quiet = logging.getLogger(name)
        quiet.setLevel(logging.WARNING)
        quiet.propagate = True
