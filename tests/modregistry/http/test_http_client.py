from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from modregistry.app import settings as settings_module
from modregistry.http import client as http_client
from modregistry.http.client import HttpResponse, RetryPolicy


def _record_sleeps(monkeypatch) -> list[float]:
    sleep_calls: list[float] = []

    async def fake_sleep(delay: float):
        sleep_calls.append(delay)

    monkeypatch.setattr(http_client.asyncio, "sleep", fake_sleep)
    return sleep_calls


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _flaky(*responses: tuple[int, dict]):
    """Handler answering with `responses` in order, then repeating the last one."""
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        status, kwargs = responses[min(len(calls), len(responses)) - 1]
        return httpx.Response(status, **kwargs)

    return handler, calls


def test_parse_retry_after_forms():
    assert http_client._parseRetryAfter("120") == pytest.approx(120.0)
    future = datetime.now(timezone.utc) + timedelta(seconds=5)
    assert http_client._parseRetryAfter(format_datetime(future)) == pytest.approx(5.0, abs=1.5)
    assert http_client._parseRetryAfter(format_datetime(datetime(2000, 1, 1, tzinfo=timezone.utc))) == 0.0


@pytest.mark.parametrize("value", ["not-a-date", "-1", "", None])
def test_parse_retry_after_rejects(value):
    assert http_client._parseRetryAfter(value) is None


def test_backoff_doubles_and_caps(monkeypatch):
    monkeypatch.setattr(http_client.random, "uniform", lambda _min, _max: 0)
    policy = RetryPolicy(retries=5, backoffBaseMs=100, backoffMaxMs=500)
    assert [policy.backoff(attempt) for attempt in range(5)] == pytest.approx([0.1, 0.2, 0.4, 0.5, 0.5])


def test_retry_policy_reads_settings(tmp_path, monkeypatch):
    path = tmp_path / "registry.json5"
    path.write_text("{ http: { retries: 7, backoff: { baseMs: 10 } } }", encoding="utf-8")
    monkeypatch.setenv("MODREGISTRY_SETTINGS", str(path))
    settings_module.reloadSettings()

    assert RetryPolicy.fromSettings() == RetryPolicy(retries=7, backoffBaseMs=10, backoffMaxMs=1_000)


@pytest.mark.asyncio
async def test_request_retries_with_exponential_backoff(monkeypatch):
    sleep_calls = _record_sleeps(monkeypatch)
    monkeypatch.setattr(http_client.random, "uniform", lambda _min, _max: 0)
    handler, calls = _flaky((503, dict(text="temporary")), (500, {}), (200, dict(json={"ok": True})))

    async with _mock_client(handler) as cli:
        result = await http_client.request(
            "get", "https://api.github.invalid/repos/o/r",
            retries=2, backoffBaseMs=100, backoffMaxMs=500, client=cli,
        )

    assert len(calls) == 3
    assert calls[0].method == "GET"
    assert sleep_calls == [pytest.approx(0.1), pytest.approx(0.2)]
    assert result.ok
    assert result.hasJson and result.data == {"ok": True}


@pytest.mark.asyncio
async def test_request_honors_retry_after_on_rate_limits(monkeypatch):
    sleep_calls = _record_sleeps(monkeypatch)
    handler, calls = _flaky(
        (429, dict(headers={"Retry-After": "1"})),
        (403, dict(headers={"Retry-After": "3"}, json={"message": "secondary rate limit"})),
        (200, dict(json=[])),
    )

    async with _mock_client(handler) as cli:
        result = await http_client.request("GET", "https://api.github.invalid/rate", retries=2, client=cli)

    assert len(calls) == 3
    assert sleep_calls == [pytest.approx(1.0), pytest.approx(3.0)]
    assert result.data == []


@pytest.mark.asyncio
async def test_plain_forbidden_is_returned_not_retried():
    handler, calls = _flaky((403, dict(json={"message": "Resource not accessible"})))

    async with _mock_client(handler) as cli:
        result = await http_client.request("GET", "https://api.github.invalid/private", retries=3, client=cli)

    assert len(calls) == 1
    assert (result.status, result.ok) == (403, False)
    assert result.data == {"message": "Resource not accessible"}


@pytest.mark.asyncio
async def test_request_raises_after_exhausting_retries(monkeypatch):
    _record_sleeps(monkeypatch)
    handler, calls = _flaky((502, dict(text="bad gateway")))

    async with _mock_client(handler) as cli:
        with pytest.raises(http_client.HTTPError) as excinfo:
            await http_client.request("GET", "https://api.github.invalid/x", retries=2, client=cli)

    assert len(calls) == 3
    assert excinfo.value.status == 502
    assert excinfo.value.body == "bad gateway"


@pytest.mark.asyncio
async def test_request_reraises_transport_errors(monkeypatch):
    sleep_calls = _record_sleeps(monkeypatch)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    async with _mock_client(handler) as cli:
        with pytest.raises(httpx.ConnectError):
            await http_client.request("GET", "https://api.github.invalid/down", retries=1, client=cli)

    assert len(sleep_calls) == 1


@pytest.mark.asyncio
async def test_request_opens_and_closes_its_own_client(monkeypatch):
    handler, _ = _flaky((200, dict(text="not-json", headers={"Content-Type": "application/json"})))
    opened: list[httpx.AsyncClient] = []
    real = httpx.AsyncClient

    def factory(*args, **kwargs):
        cli = real(*args, transport=httpx.MockTransport(handler), **kwargs)
        opened.append(cli)
        return cli

    monkeypatch.setattr(http_client.httpx, "AsyncClient", factory)

    result = await http_client.request("GET", "https://api.github.invalid/bad-json", retries=0)

    assert (result.status, result.text) == (200, "not-json")
    assert not result.hasJson and result.data is None
    assert opened and opened[0].is_closed


def test_response_headers_are_case_insensitive():
    raw = httpx.Response(200, headers={"X-RateLimit-Remaining": "42"}, request=httpx.Request("GET", "https://x.invalid"))
    resp = HttpResponse.fromHttpx(raw)
    assert resp.header("x-ratelimit-remaining") == "42"
    assert resp.header("X-RATELIMIT-REMAINING") == "42"
    assert resp.header("Retry-After") is None
