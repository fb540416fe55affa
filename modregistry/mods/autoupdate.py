# modregistry/mods/autoupdate.py
"""
Autoupdate: find the newest upstream version of a manifest and rewrite it.

One pass per manifest:

    no autoupdate policy           -> nothing to do
    no resolvable repository       -> error
    fetch latest tag / head commit -> error on API failure or nothing found
    candidate not a valid version  -> error
    candidate not newer            -> nothing to do
    substitute $version templates
    HEAD-check every URL that changed -> error, file untouched
    write file atomically          -> updated
"""
from __future__ import annotations
import functools
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx

from modregistry.core.dictpath import setByPath
from modregistry.core.errors import (
    AutoupdateError,
    GitHubApiError,
    ManifestLoadError,
    ManifestValidationError,
)
from modregistry.core.logging.context import logContext
from modregistry.core.time import calverDate, nowIso, utcNow
from modregistry.github.api import GitHubTagItem
from modregistry.github.client import GitHubClient
from modregistry.github.urls import GitHubRepoInfo, extractRepoUrl, parseGitHubUrl
from modregistry.http.url_checker import checkUrls, extractManifestUrls
from modregistry.mods.manifest import AUTOUPDATE_TEMPLATE_TARGETS, VERSION_PLACEHOLDER, ModManifest
from modregistry.mods.store import isManifestIgnored, iterManifestFiles, loadManifestData, loadManifestIgnore, writeManifestFile
from modregistry.mods.validator import createManifest
from modregistry.semver.semver import compareVersions, isCommitStamp, isValidVersion, normalizeVersion

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_BRANCH", "UpdateResult", "UpdateSummary", "LatestVersion",
    "resolveUpdateRepo", "getLatestTag", "getLatestCommitVersion", "getLatestVersion",
    "substituteVersion", "applyVersionUpdate", "updateManifestFile", "updateAllManifests",
]



DEFAULT_BRANCH = "main"



@dataclass(frozen=True)
class UpdateResult:
    path: str
    updated: bool = False
    skipped: bool = False
    manifestId: str | None = None
    oldVersion: str | None = None
    newVersion: str | None = None
    error: str | None = None



@dataclass
class UpdateSummary:
    total: int = 0
    updated: int = 0
    errors: int = 0
    skipped: int = 0
    results: list[UpdateResult] = field(default_factory=list)

    def add(self, result: UpdateResult) -> None:
        self.total += 1
        self.results.append(result)
        if result.error:
            self.errors += 1
        elif result.skipped:
            self.skipped += 1
        elif result.updated:
            self.updated += 1



@dataclass(frozen=True)
class LatestVersion:
    version: str
    commitSha: str | None = None



def resolveUpdateRepo(manifest: ModManifest) -> GitHubRepoInfo | None:
    """Repository to poll: autoupdate.update_url, else homepage, else the one behind source.url."""
    candidates: list[str | None] = []
    if manifest.autoupdate is not None:
        candidates.append(manifest.autoupdate.update_url)
    candidates.append(manifest.homepage)
    candidates.append(extractRepoUrl(manifest.source.url))
    for url in candidates:
        if url:
            repoInfo = parseGitHubUrl(url)
            if repoInfo is not None:
                return repoInfo
    return None



def _compareTags(left: GitHubTagItem, right: GitHubTagItem) -> int:
    return compareVersions(left.name, right.name)



async def _latestTag(client: GitHubClient, repoInfo: GitHubRepoInfo, regex: str | None) -> GitHubTagItem | None:
    tags = await client.listTags(repoInfo.owner, repoInfo.repo)
    if regex:
        pattern = re.compile(regex)
        tags = [tag for tag in tags if pattern.search(tag.name)]
    if not tags:
        return None
    return sorted(tags, key=functools.cmp_to_key(_compareTags), reverse=True)[0]



async def getLatestTag(client: GitHubClient, repoInfo: GitHubRepoInfo, regex: str | None = None) -> str | None:
    """Name of the highest tag (optionally only those matching `regex`)."""
    tag = await _latestTag(client, repoInfo, regex)
    return tag.name if tag else None



async def getLatestCommitVersion(
    client: GitHubClient,
    repoInfo: GitHubRepoInfo,
    branch: str = DEFAULT_BRANCH,
    *,
    now: datetime | None = None,
) -> LatestVersion:
    """
    `YYYY.MM.DD-<sha7>` for the head of `branch`. The date is the commit's own
    (committer, else author) date so an unchanged head keeps its version;
    `now` is only used when GitHub omits both dates.
    """
    commit = await client.getCommit(repoInfo.owner, repoInfo.repo, branch)
    moment = None
    if commit.committedAt:
        try:
            moment = datetime.fromisoformat(commit.committedAt.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unparseable commit date %r for %s@%s", commit.committedAt, repoInfo.fullName, branch)
    if moment is None:
        moment = now or utcNow()
    return LatestVersion(version=f"{calverDate(moment)}-{commit.sha[:7]}", commitSha=commit.sha)



async def _fetchLatest(client: GitHubClient, manifest: ModManifest, repoInfo: GitHubRepoInfo, now: datetime | None) -> LatestVersion | None:
    policy = manifest.autoupdate
    assert policy is not None
    if policy.type == "tag":
        tag = await _latestTag(client, repoInfo, policy.regex)
        if tag is None:
            return None
        return LatestVersion(version=tag.name, commitSha=tag.commit.sha)
    return await getLatestCommitVersion(client, repoInfo, policy.branch or DEFAULT_BRANCH, now=now)



async def getLatestVersion(client: GitHubClient, manifest: ModManifest, *, now: datetime | None = None) -> str | None:
    """
    Latest upstream version string for a manifest, or None when it has no
    autoupdate policy, no resolvable repository, or no matching tag.
    GitHub API failures raise GitHubApiError.
    """
    if manifest.autoupdate is None:
        return None
    repoInfo = resolveUpdateRepo(manifest)
    if repoInfo is None:
        return None
    latest = await _fetchLatest(client, manifest, repoInfo, now)
    return latest.version if latest else None



def substituteVersion(template: str, version: str) -> str:
    return template.replace(VERSION_PLACEHOLDER, version)



def applyVersionUpdate(
    manifest: ModManifest,
    version: str,
    *,
    commitSha: str | None = None,
    now: datetime | None = None,
) -> ModManifest:
    """
    New manifest with `version` applied: the version field (without a leading
    'v'), every `$version` template of the autoupdate policy, a refreshed
    `source.commit_sha` when one was already pinned, and `last_updated`.
    Raises ManifestValidationError when the result is not a valid manifest.
    """
    data: dict[str, Any] = manifest.toData()
    data["version"] = normalizeVersion(version)
    if commitSha and "commit_sha" in data["source"]:
        data["source"]["commit_sha"] = commitSha
    if manifest.autoupdate is not None:
        for key, template in manifest.autoupdate.templates.items():
            target = AUTOUPDATE_TEMPLATE_TARGETS.get(key)
            if target is None:
                logger.warning("Ignoring autoupdate template '%s' of %s: no such target field", key, manifest.id)
                continue
            setByPath(data, target, substituteVersion(template, version), createIfMissing=True)
    data["last_updated"] = nowIso(now)
    return createManifest(data)



def _isNewer(candidate: str, current: str, mode: str) -> bool:
    if mode == "commit" or isCommitStamp(candidate):
        # Stamps of different commits on the same day do not order; any change is new
        return normalizeVersion(candidate) != normalizeVersion(current)
    return compareVersions(candidate, current) > 0



async def _verifyUrls(before: ModManifest, after: ModManifest, client: httpx.AsyncClient | None) -> None:
    previous = set(extractManifestUrls(before))
    changed = [url for url in extractManifestUrls(after) if url not in previous]
    if not changed:
        return
    results = await checkUrls(changed, client=client)
    failed = [result for result in results if not result.ok]
    if failed:
        details = ", ".join(f"{result.url} ({result.describe()})" for result in failed)
        raise AutoupdateError(f"URL check failed: {details}")



async def _updateManifest(
    path: Path,
    client: GitHubClient,
    *,
    checkClient: httpx.AsyncClient | None,
    ignorePatterns: list[str] | None,
    now: datetime | None,
) -> UpdateResult:
    data = loadManifestData(path)
    # Ignored manifests are left alone even when they no longer validate
    if ignorePatterns and isManifestIgnored(data, ignorePatterns):
        modId = data.get("id") if isinstance(data.get("id"), str) else None
        version = data.get("version") if isinstance(data.get("version"), str) else None
        logger.info("Skipping %s: listed in .manifestignore", modId or path.name)
        return UpdateResult(path=str(path), skipped=True, manifestId=modId, oldVersion=version)
    manifest = createManifest(data)
    if manifest.autoupdate is None:
        return UpdateResult(path=str(path), manifestId=manifest.id, oldVersion=manifest.version)

    repoInfo = resolveUpdateRepo(manifest)
    if repoInfo is None:
        raise AutoupdateError("no GitHub repository to check for updates")
    latest = await _fetchLatest(client, manifest, repoInfo, now)
    if latest is None:
        raise AutoupdateError(f"could not determine latest version of {repoInfo.fullName}")
    if not isValidVersion(latest.version):
        raise AutoupdateError(f"latest version '{latest.version}' is not a valid SemVer version")
    if not _isNewer(latest.version, manifest.version, manifest.autoupdate.type):
        logger.debug("%s is up to date (%s, upstream %s)", manifest.id, manifest.version, latest.version)
        return UpdateResult(path=str(path), manifestId=manifest.id, oldVersion=manifest.version)

    updated = applyVersionUpdate(manifest, latest.version, commitSha=latest.commitSha, now=now)
    await _verifyUrls(manifest, updated, checkClient)
    writeManifestFile(path, updated)
    logger.info("Updated %s: %s -> %s", manifest.id, manifest.version, updated.version)
    return UpdateResult(
        path=str(path), updated=True, manifestId=manifest.id,
        oldVersion=manifest.version, newVersion=updated.version,
    )



async def updateManifestFile(
    path: str | Path,
    client: GitHubClient,
    *,
    checkClient: httpx.AsyncClient | None = None,
    ignorePatterns: list[str] | None = None,
    now: datetime | None = None,
) -> UpdateResult:
    """
    Autoupdate one manifest file. Failures come back as a result with
    `error` set; the file is only written after every check passed.
    """
    path = Path(path)
    with logContext(file=path.name):
        try:
            return await _updateManifest(path, client, checkClient=checkClient, ignorePatterns=ignorePatterns, now=now)
        except ManifestValidationError as err:
            logger.warning("Invalid manifest %s:\n%s", path, err.report.diagnostics)
            return UpdateResult(path=str(path), error=f"invalid manifest ({err.report.errorCount} issue(s))")
        except (ManifestLoadError, AutoupdateError, GitHubApiError, OSError) as err:
            logger.warning("Autoupdate of %s failed: %s", path, err)
            return UpdateResult(path=str(path), error=str(err))



async def updateAllManifests(
    directory: str | Path,
    client: GitHubClient,
    *,
    checkClient: httpx.AsyncClient | None = None,
    now: datetime | None = None,
    onResult: Callable[[UpdateResult], None] | None = None,
) -> UpdateSummary:
    """Autoupdate every manifest of `directory`, one file at a time."""
    directory = Path(directory)
    ignorePatterns = loadManifestIgnore(directory)
    summary = UpdateSummary()
    for path in iterManifestFiles(directory):
        try:
            result = await updateManifestFile(path, client, checkClient=checkClient, ignorePatterns=ignorePatterns, now=now)
        except Exception as err:
            logger.exception("Unexpected failure while updating %s", path)
            result = UpdateResult(path=str(path), error=f"{type(err).__name__}: {err}")
        summary.add(result)
        if onResult is not None:
            onResult(result)
    return summary
