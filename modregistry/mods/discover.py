# modregistry/mods/discover.py
from __future__ import annotations
import logging
from collections.abc import Callable
from dataclasses import dataclass

from modregistry.app.settings import settings
from modregistry.core.errors import DiscoveryError, GitHubApiError
from modregistry.core.logging.context import logContext
from modregistry.github.client import GitHubClient
from modregistry.github.urls import GitHubRepoInfo, decodeBase64Utf8, getModDirectory
from modregistry.mods.modinfo import ModInfo, parseModInfo

logger = logging.getLogger(__name__)

__all__ = ["DiscoveredMod", "ProgressCallback", "isDescriptorPath", "discoverMods"]



ProgressCallback = Callable[[int, int, str], None]



@dataclass(frozen=True)
class DiscoveredMod:
    descriptor: ModInfo
    path: str  # directory holding the descriptor, "" for the archive root



def isDescriptorPath(path: str, descriptorFileName: str) -> bool:
    return path == descriptorFileName or path.endswith("/" + descriptorFileName)



async def discoverMods(
    client: GitHubClient,
    repoInfo: GitHubRepoInfo,
    branch: str,
    onProgress: ProgressCallback | None = None,
    *,
    descriptorFileName: str | None = None,
) -> list[DiscoveredMod]:
    """
    Find every mod descriptor on `branch` and parse it.

    A failing tree listing raises DiscoveryError. A single descriptor that
    cannot be fetched or parsed is logged and skipped. Results keep tree order.
    """
    fileName = descriptorFileName or str(settings("manifests.descriptorFileName", "modinfo.json"))

    try:
        tree = await client.getTree(repoInfo.owner, repoInfo.repo, branch, recursive=True)
    except GitHubApiError as err:
        raise DiscoveryError(f"Could not list files of {repoInfo.fullName}@{branch}: {err}") from err
    if tree.truncated:
        logger.warning("Tree listing of %s@%s is truncated; some descriptors may be missed", repoInfo.fullName, branch)

    matches = [item for item in tree.tree if item.type == "blob" and isDescriptorPath(item.path, fileName)]
    if not matches:
        logger.info("No %s files found in %s@%s", fileName, repoInfo.fullName, branch)
        return []

    total = len(matches)
    discovered: list[DiscoveredMod] = []
    for idx, item in enumerate(matches):
        message = f"Fetched {item.path}"
        with logContext(file=item.path):
            try:
                content = await client.getContent(repoInfo.owner, repoInfo.repo, item.path, branch)
                if content.content is None:
                    message = f"Skipped {item.path}: no inline content"
                    logger.warning("No inline content returned for %s", item.path)
                else:
                    modDir = getModDirectory(item.path)
                    for modinfo in parseModInfo(decodeBase64Utf8(content.content)):
                        if modinfo.id:
                            discovered.append(DiscoveredMod(descriptor=modinfo, path=modDir))
            except (GitHubApiError, ValueError) as err:
                # ValueError covers broken base64, UTF-8 and JSON
                message = f"Failed {item.path}: {err}"
                logger.warning("Skipping %s: %s", item.path, err)
            finally:
                if onProgress is not None:
                    onProgress(idx + 1, total, message)

    logger.debug("Discovered %d mod(s) in %s@%s", len(discovered), repoInfo.fullName, branch)
    return discovered
