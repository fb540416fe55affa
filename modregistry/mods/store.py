# modregistry/mods/store.py
"""
On-disk manifest store: one YAML document per mod, `<id>.yaml`.

Files starting with `_` are examples and dotfiles are never manifests. The
`.manifestignore` dotfile lists `github.com/<owner>/<repo>/<id>` patterns
(fnmatch-style, `#` comments) that autoupdate must leave alone.
"""
from __future__ import annotations
import contextlib
import fnmatch
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from modregistry.core.errors import ManifestLoadError
from modregistry.github.urls import extractRepoUrl, parseGitHubUrl
from modregistry.mods.manifest import ModManifest
from modregistry.mods.validator import createManifest

logger = logging.getLogger(__name__)

__all__ = [
    "MANIFEST_EXTENSIONS", "MANIFEST_IGNORE_FILE", "isManifestFileName", "iterManifestFiles",
    "loadManifestData", "loadManifest", "dumpManifest", "writeManifestFile", "writeManifest",
    "loadManifestIgnore", "manifestIgnoreKey", "isManifestIgnored",
]



MANIFEST_EXTENSIONS = (".yaml", ".yml", ".json")
MANIFEST_IGNORE_FILE = ".manifestignore"



class _ManifestLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps as the strings they were written as."""
    pass


_ManifestLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}



class _ManifestDumper(yaml.SafeDumper):
    def increase_indent(self, flow: bool = False, indentless: bool = False):
        # Indent sequences under their key
        return super().increase_indent(flow, False)

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _representString(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style='"')


def _representMapping(dumper: yaml.SafeDumper, data: Mapping[str, Any]) -> yaml.MappingNode:
    # Keys stay plain (the emitter still quotes ones that would not round-trip)
    pairs = [
        (dumper.represent_scalar("tag:yaml.org,2002:str", str(key)), dumper.represent_data(value))
        for key, value in data.items()
    ]
    return yaml.MappingNode("tag:yaml.org,2002:map", pairs, flow_style=False)


_ManifestDumper.add_representer(str, _representString)
_ManifestDumper.add_representer(dict, _representMapping)



def isManifestFileName(name: str) -> bool:
    """Manifest files: known extension, not an example (`_`), not a dotfile."""
    if not name or name.startswith(("_", ".")):
        return False
    return name.lower().endswith(MANIFEST_EXTENSIONS)



def iterManifestFiles(directory: str | Path) -> list[Path]:
    directory = Path(directory)
    return sorted(
        entry for entry in directory.iterdir()
        if entry.is_file() and isManifestFileName(entry.name)
    )



def loadManifestData(path: str | Path) -> dict[str, Any]:
    """Raw mapping of one manifest file; ManifestLoadError when unreadable or not a mapping."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ManifestLoadError(str(path), f"cannot read file: {err}") from err
    try:
        data = yaml.load(text, Loader=_ManifestLoader)
    except yaml.YAMLError as err:
        raise ManifestLoadError(str(path), f"invalid YAML: {err}") from err
    if not isinstance(data, dict):
        raise ManifestLoadError(str(path), f"top level must be a mapping, got {type(data).__name__}")
    return data



def loadManifest(path: str | Path) -> ModManifest:
    """Typed manifest; raises ManifestLoadError or ManifestValidationError."""
    return createManifest(loadManifestData(path))



def dumpManifest(manifest: ModManifest | Mapping[str, Any]) -> str:
    """Canonical YAML: model field order, double-quoted strings, unicode kept."""
    data = manifest.toData() if isinstance(manifest, ModManifest) else dict(manifest)
    return yaml.dump(
        data,
        Dumper=_ManifestDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=4096,
    )



def writeManifestFile(path: str | Path, manifest: ModManifest | Mapping[str, Any]) -> Path:
    """Replace `path` atomically; the old content survives any failure before the final rename."""
    path = Path(path)
    text = dumpManifest(manifest)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmpName = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
        os.replace(tmpName, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmpName)
        raise
    return path



def writeManifest(directory: str | Path, manifest: ModManifest) -> Path:
    return writeManifestFile(Path(directory) / f"{manifest.id}.yaml", manifest)



def loadManifestIgnore(directory: str | Path) -> list[str]:
    path = Path(directory) / MANIFEST_IGNORE_FILE
    if not path.exists():
        return []
    patterns: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line.lower())
    return patterns



def manifestIgnoreKey(manifest: ModManifest | Mapping[str, Any]) -> str | None:
    """`github.com/<owner>/<repo>/<id>` (lowercased), or None when no repository is known."""
    data = manifest.toData() if isinstance(manifest, ModManifest) else manifest
    repoInfo = None
    homepage = data.get("homepage")
    if isinstance(homepage, str):
        repoInfo = parseGitHubUrl(homepage)
    if repoInfo is None:
        source = data.get("source")
        sourceUrl = source.get("url") if isinstance(source, Mapping) else None
        repoUrl = extractRepoUrl(sourceUrl) if isinstance(sourceUrl, str) else None
        repoInfo = parseGitHubUrl(repoUrl) if repoUrl else None
    if repoInfo is None or not data.get("id"):
        return None
    return f"github.com/{repoInfo.owner}/{repoInfo.repo}/{data['id']}".lower()



def isManifestIgnored(manifest: ModManifest | Mapping[str, Any], patterns: list[str]) -> bool:
    key = manifestIgnoreKey(manifest)
    if key is None or not patterns:
        return False
    return any(fnmatch.fnmatchcase(key, pattern) for pattern in patterns)
