# modregistry/http/client.py
"""
Outbound HTTP with timeouts and retries, shared by the GitHub client.

Retried: transport errors, 408/429/5xx, and GitHub's secondary rate limit
(403 carrying Retry-After). Everything else comes back as an HttpResponse.
"""
from __future__ import annotations
import asyncio
import json as jsonlib
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from modregistry.app.settings import settingsInt

logger = logging.getLogger(__name__)

__all__ = ["HTTPError", "HttpResponse", "RetryPolicy", "RETRYABLE_STATUSES", "request"]



RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})



class HTTPError(Exception):
    """Retryable status still failing after the last attempt."""
    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body



@dataclass(frozen=True)
class HttpResponse:
    status: int
    headers: dict[str, str]
    text: str
    content: bytes = b""
    data: Any = None
    hasJson: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @classmethod
    def fromHttpx(cls, resp: httpx.Response) -> HttpResponse:
        # Header names lowercased; repeated headers collapse to the last value
        headers = {key.lower(): value for key, value in resp.headers.items()}
        data = None
        hasJson = False
        if "json" in headers.get("content-type", "").lower():
            try:
                data = jsonlib.loads(resp.content)
                hasJson = True
            except ValueError:
                logger.debug("Body of %s claims JSON but does not parse", resp.request.url)
        return cls(status=resp.status_code, headers=headers, text=resp.text, content=resp.content, data=data, hasJson=hasJson)



@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 2
    backoffBaseMs: int = 250
    backoffMaxMs: int = 1_000
    jitter: float = field(default=0.25, compare=False)

    @classmethod
    def fromSettings(cls) -> RetryPolicy:
        return cls(
            retries=settingsInt("http.retries", 2),
            backoffBaseMs=settingsInt("http.backoff.baseMs", 250),
            backoffMaxMs=settingsInt("http.backoff.maxMs", 1_000),
        )

    def backoff(self, attempt: int) -> float:
        """Seconds to wait before retry `attempt + 1`: exponential, capped, jittered."""
        base = min(self.backoffMaxMs, self.backoffBaseMs * (2 ** attempt))
        spread = base * self.jitter
        return max(0.0, base + random.uniform(-spread, spread)) / 1000.0



def _parseRetryAfter(value: str | None) -> float | None:
    """Seconds from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        return seconds if seconds >= 0 else None
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(0.0, (moment - datetime.now(timezone.utc)).total_seconds())



def _isRetryable(resp: HttpResponse) -> bool:
    if resp.status in RETRYABLE_STATUSES:
        return True
    return resp.status == 403 and resp.header("retry-after") is not None



async def request(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    json: Any | None = None,
    timeoutMs: int | None = None,
    retries: int | None = None,
    backoffBaseMs: int | None = None,
    backoffMaxMs: int | None = None,
    followRedirects: bool = True,
    client: httpx.AsyncClient | None = None,
) -> HttpResponse:
    """
    Send one request, retrying transient failures.

    Unset knobs come from the `http.*` settings. A given `client` is reused
    and left open; otherwise a client is opened for this call and closed on
    every exit path, cancellation included.

    Raises HTTPError when a retryable status outlives the retries and
    re-raises the last httpx transport error the same way.
    """
    defaults = RetryPolicy.fromSettings()
    policy = RetryPolicy(
        retries=max(0, defaults.retries if retries is None else retries),
        backoffBaseMs=defaults.backoffBaseMs if backoffBaseMs is None else backoffBaseMs,
        backoffMaxMs=defaults.backoffMaxMs if backoffMaxMs is None else backoffMaxMs,
    )
    if timeoutMs is None:
        timeoutMs = settingsInt("http.timeoutMs", 30_000)
    timeout = httpx.Timeout(max(1, timeoutMs) / 1_000)
    method = method.upper()

    async def _send(cli: httpx.AsyncClient) -> HttpResponse:
        for attempt in range(policy.retries + 1):
            lastAttempt = attempt == policy.retries
            try:
                raw = await cli.request(
                    method, url,
                    headers=headers, params=params, json=json,
                    timeout=timeout, follow_redirects=followRedirects,
                )
            except httpx.HTTPError as err:
                if lastAttempt:
                    logger.debug("%s %s gave up after %d attempt(s): %s", method, url, attempt + 1, err)
                    raise
                delay = policy.backoff(attempt)
                logger.debug("%s %s transport error (%s); retrying in %.2fs", method, url, err, delay)
                await asyncio.sleep(delay)
                continue

            resp = HttpResponse.fromHttpx(raw)
            if not _isRetryable(resp):
                logger.debug("%s %s -> %d (attempt %d)", method, url, resp.status, attempt + 1)
                return resp
            if lastAttempt:
                raise HTTPError(resp.status, resp.text)
            retryAfter = _parseRetryAfter(resp.header("retry-after"))
            delay = retryAfter if retryAfter is not None else policy.backoff(attempt)
            logger.debug("%s %s -> %d; retrying in %.2fs", method, url, resp.status, delay)
            await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    if client is not None:
        return await _send(client)
    async with httpx.AsyncClient(timeout=timeout, http2=True) as cli:
        return await _send(cli)
