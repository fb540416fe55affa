# modregistry/core/logging/formatters.py
from __future__ import annotations
import json
import logging
import time
from collections.abc import Callable, Iterable

from modregistry.core.redaction import redactText
from .context import getLogContext



class RedactingFormatter(logging.Formatter):
    """
    Wraps another formatter and scrubs credentials from the rendered line.

    `secrets` is called per record so a token configured after logging was
    set up is still masked.
    """
    def __init__(self, inner: logging.Formatter, secrets: Callable[[], Iterable[str | None]] | None = None):
        super().__init__()
        self._inner = inner
        self._secrets = secrets

    def format(self, record: logging.LogRecord) -> str:
        secrets = self._secrets() if self._secrets is not None else ()
        return redactText(self._inner.format(record), secrets)



class JsonFormatter(logging.Formatter):
    """One JSON object per line; context fields (file, modId, ...) sit at top level."""
    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in (getLogContext() or {}).items():
            entry.setdefault(key, value)
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stack": self.formatException(record.exc_info),
            }
        return json.dumps(entry, ensure_ascii=False, default=str, separators=(",", ":"))



class DevFormatter(logging.Formatter):
    """`LEVEL [logger] message (key=value ...)` lines for terminals."""
    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname:<7} [{record.name}] {record.getMessage()}"
        ctx = getLogContext()
        if ctx:
            line += " (" + " ".join(f"{key}={value}" for key, value in ctx.items()) + ")"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        if record.stack_info:
            line += "\n" + self.formatStack(record.stack_info)
        return line
