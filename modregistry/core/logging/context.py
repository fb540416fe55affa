# modregistry/core/logging/context.py
from __future__ import annotations
import contextlib
import contextvars
from collections.abc import Iterator

# All log context lives here. Batch commands enrich it per manifest file.
_logContextVar: contextvars.ContextVar[dict[str, object] | None] = contextvars.ContextVar("modregistry.logctx", default=None)

def setLogContext(**kvs):
    """Set or update per-log context values (file, manifestId, repo, etc.)."""
    current = dict(_logContextVar.get() or {}) # use copy
    for key, value in kvs.items():
        if value is not None:
            current[key] = value
    _logContextVar.set(current)

def clearLogContext():
    """Clear context after a manifest is fully handled."""
    _logContextVar.set(None)

def getLogContext():
    """Return current content dict or None."""
    return _logContextVar.get()

@contextlib.contextmanager
def logContext(**kvs) -> Iterator[None]:
    """Scope context values to a block, restoring the previous context afterwards."""
    token = _logContextVar.set(dict(_logContextVar.get() or {}))
    try:
        setLogContext(**kvs)
        yield
    finally:
        _logContextVar.reset(token)
