# modregistry/github/urls.py
"""
Helpers for the single hosting pattern the registry understands:
https://github.com/<owner>/<repo>[...] and the owner/repo shorthand.
"""
from __future__ import annotations
import base64
import re
from dataclasses import dataclass

from modregistry.core.errors import InvalidRepositoryUrl

__all__ = [
    "GitHubRepoInfo", "parseGitHubUrl", "requireGitHubUrl", "extractRepoUrl", "buildArchiveUrl",
    "buildGitHubPath", "getModDirectory", "decodeBase64Utf8", "toManifestId",
]



@dataclass(frozen=True)
class GitHubRepoInfo:
    owner: str
    repo: str

    @property
    def fullName(self) -> str:
        return f"{self.owner}/{self.repo}"



_GITHUB_URL_PATTERNS = [
    re.compile(r"^https?://github\.com/([^/]+)/([^/]+?)(?:\.git)?(?:/|$)", re.IGNORECASE),
    re.compile(r"^([^/:\s]+)/([^/\s]+)$"),
]



def parseGitHubUrl(url: str) -> GitHubRepoInfo | None:
    """
    Parse a GitHub URL to extract owner and repository name.

    Supports:
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - https://github.com/owner/repo/tree/branch/path
      - owner/repo (shorthand)
    """
    url = (url or "").strip()
    for pattern in _GITHUB_URL_PATTERNS:
        mtch = pattern.match(url)
        if mtch:
            repo = re.sub(r"\.git$", "", mtch.group(2))
            if not repo:
                return None
            return GitHubRepoInfo(owner=mtch.group(1), repo=repo)
    return None



def requireGitHubUrl(url: str) -> GitHubRepoInfo:
    repoInfo = parseGitHubUrl(url)
    if repoInfo is None:
        raise InvalidRepositoryUrl(f"Not a GitHub repository URL: {url}")
    return repoInfo



def extractRepoUrl(url: str) -> str | None:
    """Repository URL (https://github.com/owner/repo) embedded in any github.com URL."""
    if not url or "github.com" not in url:
        return None
    mtch = re.search(r"github\.com/([^/]+)/([^/?#]+)", url)
    if not mtch:
        return None
    return f"https://github.com/{mtch.group(1)}/{re.sub(r'.git$', '', mtch.group(2))}"



def buildArchiveUrl(owner: str, repo: str, branch: str) -> str:
    return f"https://github.com/{owner}/{repo}/archive/refs/heads/{branch}.zip"



def buildGitHubPath(owner: str, repo: str, branch: str, path: str | None = None) -> str:
    """Browser URL of the repository, or of a directory inside it."""
    if not path or path == ".":
        return f"https://github.com/{owner}/{repo}"
    return f"https://github.com/{owner}/{repo}/tree/{branch}/{path}"



def getModDirectory(descriptorPath: str) -> str:
    """Directory holding a descriptor file; empty string for the repository root."""
    lastSlash = descriptorPath.rfind("/")
    if lastSlash == -1:
        return ""
    return descriptorPath[:lastSlash]



def decodeBase64Utf8(encoded: str) -> str:
    """Decode GitHub's line-wrapped base64 content as UTF-8 text."""
    cleaned = "".join(encoded.split())
    return base64.b64decode(cleaned).decode("utf-8")



def toManifestId(modId: str) -> str:
    """
    Convert a descriptor id to a manifest id:
    lowercase, only [a-z0-9_], no leading/trailing/consecutive underscores.
    """
    out = re.sub(r"[^a-z0-9_]", "_", modId.lower())
    out = out.strip("_")
    return re.sub(r"_+", "_", out)
