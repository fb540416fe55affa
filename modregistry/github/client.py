# modregistry/github/client.py
from __future__ import annotations
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from modregistry.app.settings import githubToken, settings, settingsInt
from modregistry.core.errors import GitHubApiError
from modregistry.github.api import (
    GitHubCommitResponse,
    GitHubContentResponse,
    GitHubRepoResponse,
    GitHubTagItem,
    GitHubTreeResponse,
)
from modregistry.github.urls import GitHubRepoInfo
from modregistry.http.client import HTTPError, request

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)

__all__ = ["RateLimitStatus", "GitHubClient", "RepoMetadata", "fetchRepoMetadata"]



@dataclass(frozen=True)
class RateLimitStatus:
    limit: int | None
    remaining: int | None
    reset: int | None



def _headerInt(headers: Mapping[str, str], name: str) -> int | None:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None



class GitHubClient:
    """
    Thin async client for the handful of GitHub REST endpoints the registry uses.

    Use as an async context manager so the pooled connection is closed:

        async with GitHubClient(token) as gh:
            repo = await gh.getRepository("owner", "repo")
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        apiBase: str | None = None,
        userAgent: str | None = None,
        onRateLimit: Callable[[RateLimitStatus], None] | None = None,
        timeoutMs: int | None = None,
        retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token if token is not None else githubToken()
        self.apiBase = str(apiBase or settings("github.apiBase", "https://api.github.com")).rstrip("/")
        self.userAgent = str(userAgent or settings("github.userAgent", "BN-Mod-Registry/1.0"))
        self.onRateLimit = onRateLimit
        self.timeoutMs = timeoutMs if timeoutMs is not None else settingsInt("http.timeoutMs", 30_000)
        self.retries = retries if retries is not None else settingsInt("http.retries", 2)
        self.rateLimit: RateLimitStatus | None = None
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GitHubClient:
        self._session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _session(self) -> httpx.AsyncClient:
        if self._client is None:
            if self._transport is not None:
                self._client = httpx.AsyncClient(transport=self._transport)
            else:
                self._client = httpx.AsyncClient(http2=True)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.userAgent,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _trackRateLimit(self, headers: Mapping[str, str]) -> None:
        lowered = {str(key).lower(): str(value) for key, value in headers.items()}
        remaining = _headerInt(lowered, "x-ratelimit-remaining")
        if remaining is None:
            return
        self.rateLimit = RateLimitStatus(
            limit=_headerInt(lowered, "x-ratelimit-limit"),
            remaining=remaining,
            reset=_headerInt(lowered, "x-ratelimit-reset"),
        )
        if remaining < 10:
            logger.warning("GitHub rate limit nearly exhausted: %d request(s) left", remaining)
        if self.onRateLimit is not None:
            self.onRateLimit(self.rateLimit)

    async def getJson(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET an API path and return the decoded JSON body; non-2xx raises GitHubApiError."""
        url = f"{self.apiBase}{path}"
        try:
            resp = await request(
                "GET",
                url,
                headers=self._headers(),
                params=params,
                timeoutMs=self.timeoutMs,
                retries=self.retries,
                client=self._session(),
            )
        except HTTPError as err:
            raise GitHubApiError(err.status, url, err.body) from err
        except httpx.HTTPError as err:
            raise GitHubApiError(0, url, str(err) or type(err).__name__) from err

        self._trackRateLimit(resp.headers)
        if not resp.ok:
            raise GitHubApiError(resp.status, url, resp.text)
        if resp.hasJson:
            return resp.data
        try:
            return json.loads(resp.text)
        except ValueError as err:
            raise GitHubApiError(resp.status, url, f"invalid JSON body: {err}") from err

    def _parse(self, model: type[_ModelT], data: Any, path: str) -> _ModelT:
        """Validate a decoded body; a payload of the wrong shape raises GitHubApiError."""
        try:
            return model.model_validate(data)
        except ValidationError as err:
            raise GitHubApiError(200, f"{self.apiBase}{path}", f"unexpected payload: {err}") from err

    async def getRepository(self, owner: str, repo: str) -> GitHubRepoResponse:
        data = await self.getJson(f"/repos/{owner}/{repo}")
        return self._parse(GitHubRepoResponse, data, f"/repos/{owner}/{repo}")

    async def getTree(self, owner: str, repo: str, ref: str, *, recursive: bool = True) -> GitHubTreeResponse:
        params = {"recursive": "1"} if recursive else None
        data = await self.getJson(f"/repos/{owner}/{repo}/git/trees/{quote(ref, safe='')}", params)
        return self._parse(GitHubTreeResponse, data, f"/repos/{owner}/{repo}/git/trees/{ref}")

    async def getContent(self, owner: str, repo: str, path: str, ref: str | None = None) -> GitHubContentResponse:
        params = {"ref": ref} if ref else None
        data = await self.getJson(f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}", params)
        if not isinstance(data, dict):
            # A directory listing comes back as an array
            raise GitHubApiError(200, f"{self.apiBase}/repos/{owner}/{repo}/contents/{path}", "not a file")
        return self._parse(GitHubContentResponse, data, f"/repos/{owner}/{repo}/contents/{path}")

    async def listTags(self, owner: str, repo: str, *, perPage: int | None = None) -> list[GitHubTagItem]:
        if perPage is None:
            perPage = settingsInt("github.tagsPerPage", 100)
        data = await self.getJson(f"/repos/{owner}/{repo}/tags", {"per_page": perPage})
        if data is not None and not isinstance(data, list):
            raise GitHubApiError(200, f"{self.apiBase}/repos/{owner}/{repo}/tags", "unexpected payload: not a list")
        return [self._parse(GitHubTagItem, item, f"/repos/{owner}/{repo}/tags") for item in data or []]

    async def getCommit(self, owner: str, repo: str, ref: str) -> GitHubCommitResponse:
        data = await self.getJson(f"/repos/{owner}/{repo}/commits/{quote(ref, safe='')}")
        return self._parse(GitHubCommitResponse, data, f"/repos/{owner}/{repo}/commits/{ref}")



@dataclass(frozen=True)
class RepoMetadata:
    defaultBranch: str
    commitSha: str
    description: str | None = None



async def fetchRepoMetadata(client: GitHubClient, repoInfo: GitHubRepoInfo, branch: str | None = None) -> RepoMetadata:
    """Default branch of the repository and the head commit of `branch` (or the default branch)."""
    repo = await client.getRepository(repoInfo.owner, repoInfo.repo)
    ref = branch or repo.default_branch
    try:
        commit = await client.getCommit(repoInfo.owner, repoInfo.repo, ref)
        commitSha = commit.sha
    except GitHubApiError as err:
        logger.warning("Could not resolve head commit of %s@%s: %s", repoInfo.fullName, ref, err)
        commitSha = ""
    return RepoMetadata(defaultBranch=repo.default_branch, commitSha=commitSha, description=repo.description)
