# modregistry/mods/synthesize.py
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any

from modregistry.core.time import nowIso
from modregistry.github.urls import buildArchiveUrl, buildGitHubPath, toManifestId
from modregistry.mods.discover import DiscoveredMod
from modregistry.mods.manifest import (
    COMMIT_SHA_RE,
    DEFAULT_LICENSE,
    SCHEMA_VERSION,
    SHORT_DESCRIPTION_MAX,
    ModManifest,
)
from modregistry.mods.modinfo import convertDependencies, stripColorCodes
from modregistry.mods.validator import createManifest, detectParentMod
from modregistry.semver.semver import isValidVersion

logger = logging.getLogger(__name__)

__all__ = ["FALLBACK_VERSION", "UNKNOWN_AUTHOR", "synthesizeManifestData", "synthesizeManifest"]



FALLBACK_VERSION = "0.0.0"
UNKNOWN_AUTHOR = "Unknown"



def synthesizeManifestData(
    discovered: DiscoveredMod,
    owner: str,
    repo: str,
    branch: str,
    commitSha: str | None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Manifest candidate as plain data, keys in canonical order."""
    modinfo = discovered.descriptor
    modId = toManifestId(modinfo.id)

    displayName = stripColorCodes(modinfo.name) or modId
    shortDescription = stripColorCodes(modinfo.description or "")[:SHORT_DESCRIPTION_MAX]
    authors = [author.strip() for author in (modinfo.authors or []) if author and author.strip()]
    version = modinfo.version if modinfo.version and isValidVersion(modinfo.version) else FALLBACK_VERSION
    if modinfo.version and version == FALLBACK_VERSION:
        logger.info("Descriptor version %r of %s is not SemVer; using %s", modinfo.version, modId, FALLBACK_VERSION)

    source: dict[str, Any] = {"type": "github_archive", "url": buildArchiveUrl(owner, repo, branch)}
    if commitSha and COMMIT_SHA_RE.fullmatch(commitSha):
        source["commit_sha"] = commitSha
    if discovered.path:
        source["extract_path"] = discovered.path

    data: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "id": modId,
        "display_name": displayName,
        "short_description": shortDescription,
        "author": authors or [UNKNOWN_AUTHOR],
        "license": modinfo.license or DEFAULT_LICENSE,
        "homepage": buildGitHubPath(owner, repo, branch, discovered.path or None),
        "version": version,
    }
    dependencies = convertDependencies(modinfo.dependencies)
    if dependencies:
        data["dependencies"] = dependencies
    data["source"] = source
    if modinfo.category:
        data["categories"] = [modinfo.category]
    data["autoupdate"] = {"type": "commit", "branch": branch}

    # Dependencies must be in place before the parent can be inferred
    parent = detectParentMod(data)
    if parent:
        data["parent"] = parent
    data["last_updated"] = nowIso(now)
    return data



def synthesizeManifest(
    discovered: DiscoveredMod,
    owner: str,
    repo: str,
    branch: str,
    commitSha: str | None,
    *,
    now: datetime | None = None,
) -> ModManifest:
    """Typed manifest for a discovered descriptor; raises ManifestValidationError if it cannot be valid."""
    return createManifest(synthesizeManifestData(discovered, owner, repo, branch, commitSha, now=now))
