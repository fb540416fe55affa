# modregistry/core/dictpath.py
"""
Dotted paths into nested mappings: `source.url`, `autoupdate.branch`.

A key that itself contains a dot is written with a backslash: `a\\.b.c`
addresses `data["a.b"]["c"]`.
"""
from __future__ import annotations
import re
from collections.abc import Mapping, MutableMapping
from typing import Any

__all__ = ["splitPath", "getByPath", "setByPath", "hasPath"]



_SEPARATOR_RE = re.compile(r"(?<!\\)\.")



def splitPath(path: str) -> list[str]:
    """Path segments; ValueError for empty paths, empty segments or a trailing backslash."""
    if not isinstance(path, str) or not path:
        raise ValueError("Path must be a non-empty string")
    if re.search(r"(?<!\\)(\\\\)*\\$", path):
        raise ValueError(f"Path '{path}' ends with a dangling escape")
    parts = [re.sub(r"\\(.)", r"\1", part) for part in _SEPARATOR_RE.split(path)]
    if any(not part for part in parts):
        raise ValueError(f"Path '{path}' contains an empty segment")
    return parts



def getByPath(obj: Any, path: str, default: Any | None = None) -> Any:
    """Value at `path`, or `default` when any segment is missing or the path is invalid."""
    try:
        parts = splitPath(path)
    except ValueError:
        return default
    current = obj
    for part in parts:
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current



def setByPath(obj: MutableMapping[str, Any], path: str, value: Any, *, createIfMissing: bool = False) -> None:
    """
    Write `value` at `path`. Missing (or null) parents are created only with
    `createIfMissing`, otherwise KeyError; a scalar in the way raises TypeError.
    """
    *parents, leaf = splitPath(path)
    current: Any = obj
    for part in parents:
        child = current.get(part)
        if child is None:
            if not createIfMissing:
                raise KeyError(f"path segment '{part}' not found")
            child = current[part] = {}
        elif not isinstance(child, MutableMapping):
            raise TypeError(f"Cannot descend into '{part}': it holds a {type(child).__name__}")
        current = child
    current[leaf] = value



def hasPath(obj: Any, path: str) -> bool:
    missing = object()
    return getByPath(obj, path, missing) is not missing
