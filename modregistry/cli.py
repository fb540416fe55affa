# modregistry/cli.py
"""
Command line entry point: `bn-registry`.

    bn-registry validate [TARGET] [-q]
    bn-registry fetch URL [-o DIR] [--branch B] [--filter REGEX] [--dry-run] [--token T]
    bn-registry autoupdate [TARGET]
    bn-registry check-urls [TARGET]

Batch commands always print a summary and exit 1 when any file failed.
"""
from __future__ import annotations
import asyncio
import logging
import re
import sys
from pathlib import Path
from typing import Any

import click

from modregistry.app.settings import settings
from modregistry.core.errors import (
    DiscoveryError,
    GitHubApiError,
    InvalidRepositoryUrl,
    ManifestLoadError,
    ManifestValidationError,
)
from modregistry.core.logging import configureLogging, logContext
from modregistry.github.client import GitHubClient, RateLimitStatus, fetchRepoMetadata
from modregistry.github.urls import requireGitHubUrl
from modregistry.http.url_checker import checkUrls, extractManifestUrls
from modregistry.mods.autoupdate import UpdateResult, UpdateSummary, updateAllManifests, updateManifestFile
from modregistry.mods.discover import discoverMods
from modregistry.mods.reconcile import reconcile
from modregistry.mods.store import (
    MANIFEST_EXTENSIONS,
    iterManifestFiles,
    loadManifest,
    loadManifestData,
    loadManifestIgnore,
    writeManifest,
)
from modregistry.mods.synthesize import synthesizeManifest
from modregistry.mods.validator import checkManifest

logger = logging.getLogger(__name__)

__all__ = ["cli", "main"]



def _defaultManifestDir() -> Path:
    return Path(str(settings("manifests.dir", "manifests")))



def _resolveTargets(target: Path | None) -> tuple[list[Path], int]:
    """Manifest files named by `target` plus the number of example files left out."""
    target = target or _defaultManifestDir()
    if target.is_file():
        return [target], 0
    if not target.is_dir():
        raise click.ClickException(f"No such file or directory: {target}")
    examples = sum(
        1 for entry in target.iterdir()
        if entry.is_file() and entry.name.startswith("_") and entry.name.lower().endswith(MANIFEST_EXTENSIONS)
    )
    return iterManifestFiles(target), examples



def _logRateLimit(status: RateLimitStatus) -> None:
    logger.debug("GitHub rate limit: %s/%s remaining, resets at %s", status.remaining, status.limit, status.reset)



@click.group(name="bn-registry")
@click.option("--debug", is_flag=True, help="Verbose logging.")
def cli(debug: bool) -> None:
    """Maintain the BN mod manifest registry."""
    configureLogging("DEBUG" if debug else None)



# ---------- validate ----------

@cli.command()
@click.argument("target", required=False, type=click.Path(exists=True, path_type=Path))
@click.option("--quiet", "-q", is_flag=True, help="Only print invalid manifests and the summary.")
def validate(target: Path | None, quiet: bool) -> None:
    """Validate one manifest file or every manifest in a directory."""
    files, skipped = _resolveTargets(target)
    valid = 0
    invalid = 0
    for path in files:
        try:
            data: Any = loadManifestData(path)
        except ManifestLoadError as err:
            invalid += 1
            click.echo(f"Checking: {path.name}\n  ✗ {err.reason}")
            continue
        report, rendered = checkManifest(data, label=path.name)
        if report.valid:
            valid += 1
            if not quiet:
                click.echo(rendered)
        else:
            invalid += 1
            click.echo(rendered)

    click.echo(f"\nTotal: {len(files)}  Valid: {valid}  Invalid: {invalid}  Skipped examples: {skipped}")
    if invalid:
        sys.exit(1)



# ---------- fetch ----------

async def _fetch(
    url: str,
    outDir: Path,
    branch: str | None,
    pathFilter: re.Pattern[str] | None,
    dryRun: bool,
    token: str | None,
) -> dict[str, int]:
    try:
        repoInfo = requireGitHubUrl(url)
    except InvalidRepositoryUrl as err:
        raise click.ClickException(str(err)) from err
    counts = {"created": 0, "updated": 0, "unchanged": 0, "errors": 0}

    async with GitHubClient(token, onRateLimit=_logRateLimit) as client:
        try:
            metadata = await fetchRepoMetadata(client, repoInfo, branch)
            ref = branch or metadata.defaultBranch
            discovered = await discoverMods(
                client, repoInfo, ref,
                lambda current, total, message: click.echo(f"[{current}/{total}] {message}", err=True),
            )
        except (GitHubApiError, DiscoveryError) as err:
            raise click.ClickException(str(err)) from err

    if not discovered:
        click.echo(f"No mods found in {repoInfo.fullName}@{ref}")
        return counts

    if pathFilter is not None:
        discovered = [mod for mod in discovered if pathFilter.search(mod.path)]
        click.echo(f"Filtered to {len(discovered)} mod(s) matching pattern: {pathFilter.pattern}")

    for mod in discovered:
        with logContext(modId=mod.descriptor.id):
            try:
                generated = synthesizeManifest(mod, repoInfo.owner, repoInfo.repo, ref, metadata.commitSha)
                existingPath = outDir / f"{generated.id}.yaml"
                existing = loadManifest(existingPath) if existingPath.exists() else None
                outcome = reconcile(existing, generated)
            except ManifestValidationError as err:
                counts["errors"] += 1
                click.echo(f"  ✗ {mod.descriptor.id}:\n" + "\n".join(f"    {issue}" for issue in err.report.issues))
                continue
            except ManifestLoadError as err:
                counts["errors"] += 1
                click.echo(f"  ✗ {mod.descriptor.id}: {err}")
                continue

            if outcome.action == "skip":
                counts["unchanged"] += 1
                click.echo(f"  = {outcome.result.id}")
                continue
            if not dryRun:
                try:
                    writeManifest(outDir, outcome.result)
                except OSError as err:
                    counts["errors"] += 1
                    click.echo(f"  ✗ {outcome.result.id}: {err}")
                    continue
            counts["created" if outcome.action == "create" else "updated"] += 1
            click.echo(f"  {'+' if outcome.action == 'create' else '~'} {outcome.result.id}")
    return counts



@cli.command()
@click.argument("url")
@click.option("--output", "-o", "outDir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Manifest directory (default: manifests.dir setting).")
@click.option("--branch", "-b", default=None, help="Branch to scan (default: the repository's default branch).")
@click.option("--filter", "pathFilter", default=None, help="Only mods whose repository path matches this regex.")
@click.option("--dry-run", "dryRun", is_flag=True, help="Report what would change without writing files.")
@click.option("--token", envvar="GITHUB_TOKEN", default=None, help="GitHub token (default: $GITHUB_TOKEN).")
def fetch(url: str, outDir: Path | None, branch: str | None, pathFilter: str | None, dryRun: bool, token: str | None) -> None:
    """Generate or refresh manifests for every mod in a GitHub repository."""
    outDir = outDir or _defaultManifestDir()
    try:
        pattern = re.compile(pathFilter) if pathFilter else None
    except re.error as err:
        raise click.BadParameter(str(err), param_hint="--filter") from err
    if not dryRun:
        outDir.mkdir(parents=True, exist_ok=True)

    counts = asyncio.run(_fetch(url, outDir, branch, pattern, dryRun, token))
    prefix = "Would have " if dryRun else ""
    click.echo(
        f"\n{prefix}Created: {counts['created']}  Updated: {counts['updated']}  "
        f"Unchanged: {counts['unchanged']}  Errors: {counts['errors']}"
    )
    if counts["errors"]:
        sys.exit(1)



# ---------- autoupdate ----------

def _echoUpdate(result: UpdateResult) -> None:
    name = Path(result.path).name
    if result.error:
        click.echo(f"  ✗ {name}: {result.error}")
    elif result.skipped:
        click.echo(f"  - {name}: ignored")
    elif result.updated:
        click.echo(f"  ↑ {name}: {result.oldVersion} -> {result.newVersion}")



async def _autoupdate(target: Path) -> UpdateSummary:
    async with GitHubClient(onRateLimit=_logRateLimit) as client:
        if target.is_file():
            summary = UpdateSummary()
            result = await updateManifestFile(target, client, ignorePatterns=loadManifestIgnore(target.parent))
            summary.add(result)
            _echoUpdate(result)
        else:
            summary = await updateAllManifests(target, client, onResult=_echoUpdate)
        if client.rateLimit is not None:
            click.echo(f"GitHub API requests remaining: {client.rateLimit.remaining}", err=True)
    return summary



@cli.command()
@click.argument("target", required=False, type=click.Path(exists=True, path_type=Path))
def autoupdate(target: Path | None) -> None:
    """Bump manifests whose upstream has a newer tag or commit."""
    target = target or _defaultManifestDir()
    if not target.exists():
        raise click.ClickException(f"No such file or directory: {target}")
    summary = asyncio.run(_autoupdate(target))
    click.echo(
        f"\nChecked: {summary.total}  Updated: {summary.updated}  "
        f"Errors: {summary.errors}  Skipped: {summary.skipped}"
    )
    if summary.errors:
        sys.exit(1)



# ---------- check-urls ----------

async def _checkUrls(files: list[Path]) -> tuple[int, int]:
    checked = 0
    failures = 0
    for path in files:
        try:
            data = loadManifestData(path)
        except ManifestLoadError as err:
            failures += 1
            click.echo(f"  ✗ {path.name}: {err.reason}")
            continue
        for result in await checkUrls(extractManifestUrls(data)):
            checked += 1
            if not result.ok:
                failures += 1
                click.echo(f"  ✗ {path.name}: {result.url} ({result.describe()})")
    return checked, failures



@cli.command("check-urls")
@click.argument("target", required=False, type=click.Path(exists=True, path_type=Path))
def checkUrlsCommand(target: Path | None) -> None:
    """HEAD-check the source and icon URLs of manifests."""
    files, _ = _resolveTargets(target)
    checked, failures = asyncio.run(_checkUrls(files))
    click.echo(f"\nURLs checked: {checked}  Failed: {failures}")
    if failures:
        sys.exit(1)



def main() -> None:
    cli()



if __name__ == "__main__":
    main()
