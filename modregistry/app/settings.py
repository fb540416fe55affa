# modregistry/app/settings.py
from __future__ import annotations
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import json5

from modregistry.core.dictpath import getByPath, setByPath

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "SETTINGS", "SETTINGS_FILE_NAME", "SETTINGS_ENV_VAR", "settingsFilePath",
    "loadUserSettings", "loadSettings", "reloadSettings", "deepMerge",
    "settings", "settingsBool", "settingsInt", "githubToken",
]



SETTINGS_FILE_NAME = "registry.json5"
SETTINGS_ENV_VAR = "MODREGISTRY_SETTINGS"

SETTINGS: dict[str, Any] = {
    "__source": "BUILTIN_DEFAULTS",
    "github": {
        "apiBase": "https://api.github.com",
        "userAgent": "BN-Mod-Registry/1.0",
        "tagsPerPage": 100,
        "token": None,
    },
    "http": {"timeoutMs": 30_000, "retries": 2, "backoff": {"baseMs": 250, "maxMs": 1_000}},
    "urlCheck": {"retries": 3, "retryDelayMs": 5_000, "timeoutMs": 30_000},
    "manifests": {"dir": "manifests", "descriptorFileName": "modinfo.json"},
    "logging": {"level": "INFO", "json": False},
}



def settingsFilePath() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(os.path.expanduser(override))
    return Path.cwd() / SETTINGS_FILE_NAME



def loadUserSettings() -> dict[str, Any]:
    filePath = settingsFilePath()
    if not filePath.exists():
        return {}
    try:
        loaded = json5.loads(filePath.read_text(encoding="utf-8"))
    except (OSError, ValueError) as err:
        logger.error("Failed to parse '%s': %s", filePath, err)
        return {}
    if not isinstance(loaded, dict):
        logger.error("Ignoring '%s': top level must be an object, got %s", filePath, type(loaded).__name__)
        return {}
    return loaded



def _envOverrides() -> dict[str, Any]:
    out: dict[str, Any] = {}
    token = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
    if token:
        setByPath(out, "github.token", token.strip(), createIfMissing=True)
    if os.environ.get("MODREGISTRY_DEBUG", "").lower() in ("1", "true", "yes", "on"):
        setByPath(out, "logging.level", "DEBUG", createIfMissing=True)
    return out



@lru_cache(maxsize=1)
def loadSettings() -> dict[str, Any]:
    return deepMerge(deepMerge(SETTINGS, loadUserSettings()), _envOverrides())



def reloadSettings() -> dict[str, Any]:
    loadSettings.cache_clear()
    return loadSettings()



def deepMerge(first: Any, second: Any) -> Any:
    """
    Returns a new value where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are dicts; for every other type
    the right-hand value replaces the left.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, Any] = dict(first)
        for key, value in second.items():
            if key in out:
                out[key] = deepMerge(out[key], value)
            else:
                out[key] = value
        return out
    return second

# ---------- Ergonomic accessors over merged settings ----------

def settings(path: str, default: Any = None) -> Any:
    """Returns value at `path` from merged settings, or `default` if missing."""
    val = getByPath(loadSettings(), path)
    return default if val is None else val



def settingsBool(path: str, default: bool = False) -> bool:
    val = settings(path, None)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    if isinstance(val, str):
        return val.strip().lower() in ("1", "true", "yes", "on")
    return bool(val)



def settingsInt(path: str, default: int) -> int:
    val = settings(path, None)
    try:
        return int(val) if val is not None else default
    except (TypeError, ValueError):
        logger.warning("Setting '%s' is not an integer (%r); using %d", path, val, default)
        return default



def githubToken() -> str | None:
    token = settings("github.token")
    return str(token) if token else None
