# modregistry/http/url_checker.py
"""
Reachability checks for manifest URLs.

A URL is reachable when a HEAD request (redirects followed) ends in a 2xx.
Only 5xx answers are retried; any other failure, network errors included,
is final on the first attempt.
"""
from __future__ import annotations
import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from modregistry.app.settings import settingsInt

logger = logging.getLogger(__name__)

__all__ = ["UrlCheckResult", "checkUrl", "checkUrls", "extractManifestUrls"]



@dataclass(frozen=True)
class UrlCheckResult:
    url: str
    ok: bool
    status: int | None = None
    error: str | None = None

    def describe(self) -> str:
        return str(self.status) if self.status is not None else (self.error or "unknown error")



async def _headOnce(cli: httpx.AsyncClient, url: str, timeoutMs: int) -> httpx.Response:
    return await cli.head(url, follow_redirects=True, timeout=httpx.Timeout(timeoutMs / 1_000))



async def checkUrl(
    url: str,
    *,
    retries: int | None = None,
    retryDelayMs: int | None = None,
    timeoutMs: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> UrlCheckResult:
    """HEAD-check one URL. Never raises; the outcome is carried in the result."""
    if retries is None:
        retries = settingsInt("urlCheck.retries", 3)
    if retryDelayMs is None:
        retryDelayMs = settingsInt("urlCheck.retryDelayMs", 5_000)
    if timeoutMs is None:
        timeoutMs = settingsInt("urlCheck.timeoutMs", 30_000)
    attempts = max(1, retries)

    async def _run(cli: httpx.AsyncClient) -> UrlCheckResult:
        for attempt in range(attempts):
            try:
                resp = await _headOnce(cli, url, timeoutMs)
            except httpx.HTTPError as err:
                logger.info("URL check failed for %s: %s", url, err)
                return UrlCheckResult(url=url, ok=False, error=str(err) or type(err).__name__)

            status = resp.status_code
            if 200 <= status < 300:
                return UrlCheckResult(url=url, ok=True, status=status)

            # Retry on server errors
            if status >= 500 and attempt < attempts - 1:
                logger.info("RETRY\t%d\t%s", status, url)
                await asyncio.sleep(retryDelayMs / 1_000)
                continue

            return UrlCheckResult(url=url, ok=False, status=status)

        # Loop always returns; kept for type checkers
        return UrlCheckResult(url=url, ok=False, error="Max retries exceeded")

    try:
        if client is not None:
            return await _run(client)
        async with httpx.AsyncClient() as cli:
            return await _run(cli)
    except httpx.InvalidURL as err:
        return UrlCheckResult(url=url, ok=False, error=str(err))



async def checkUrls(
    urls: Iterable[str],
    *,
    retries: int | None = None,
    retryDelayMs: int | None = None,
    timeoutMs: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[UrlCheckResult]:
    """Check several URLs in parallel; results keep the input order."""
    return list(await asyncio.gather(*(
        checkUrl(url, retries=retries, retryDelayMs=retryDelayMs, timeoutMs=timeoutMs, client=client)
        for url in urls
    )))



def extractManifestUrls(manifest: Mapping[str, Any] | Any) -> list[str]:
    """
    URLs of a manifest that must stay reachable: the source archive and the icon.
    The homepage is informational and not checked.
    """
    if hasattr(manifest, "toData"):
        manifest = manifest.toData()
    urls: list[str] = []
    source = manifest.get("source") if isinstance(manifest, Mapping) else None
    if isinstance(source, Mapping) and source.get("url"):
        urls.append(str(source["url"]))
    iconUrl = manifest.get("icon_url") if isinstance(manifest, Mapping) else None
    if iconUrl:
        urls.append(str(iconUrl))
    return urls
