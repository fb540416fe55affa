import base64
import sys
from typing import Any

import httpx
import pytest

from modregistry.app import settings as settings_module
from modregistry.github.client import GitHubClient



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")



@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep a developer's registry.json5 and GitHub token out of the tests."""
    monkeypatch.setenv(settings_module.SETTINGS_ENV_VAR, str(tmp_path / "no-such-settings.json5"))
    for name in ("GITHUB_TOKEN", "GH_TOKEN", "MODREGISTRY_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    settings_module.reloadSettings()
    yield
    settings_module.loadSettings.cache_clear()



@pytest.fixture
def manifest_data() -> dict[str, Any]:
    return {
        "schema_version": "1.0",
        "id": "arcana_foo_patch",
        "display_name": "Arcana Foo Patch",
        "short_description": "Makes Arcana play nice with Foo.",
        "author": ["Someone"],
        "license": "CC-BY-SA-4.0",
        "homepage": "https://github.com/someone/arcana-patches",
        "version": "1.2.3",
        "dependencies": {"bn": ">=0.9.1", "arcana": "*"},
        "source": {
            "type": "github_archive",
            "url": "https://github.com/someone/arcana-patches/archive/refs/heads/main.zip",
            "extract_path": "foo_patch",
        },
        "categories": ["content"],
        "parent": "arcana",
        "last_updated": "2025-01-01T00:00:00.000Z",
    }



def encode_content(text: str) -> str:
    """Base64 the way the contents API returns it: wrapped at 60 columns."""
    raw = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return "\n".join(raw[idx:idx + 60] for idx in range(0, len(raw), 60)) + "\n"



class FakeGitHub:
    """Routes GitHub API paths to canned JSON through httpx.MockTransport."""

    def __init__(self):
        self.routes: dict[str, tuple[int, Any, dict[str, str]]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, path: str, payload: Any, status: int = 200, headers: dict[str, str] | None = None) -> None:
        self.routes[path] = (status, payload, headers or {})

    def add_file(self, owner: str, repo: str, path: str, text: str) -> None:
        self.add(f"/repos/{owner}/{repo}/contents/{path}", {
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": "0" * 40,
            "size": len(text),
            "type": "file",
            "encoding": "base64",
            "content": encode_content(text),
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.routes.get(request.url.path)
        if entry is None:
            return httpx.Response(404, json={"message": "Not Found"})
        status, payload, headers = entry
        return httpx.Response(status, json=payload, headers=headers)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def client(self, **kwargs) -> GitHubClient:
        return GitHubClient(transport=httpx.MockTransport(self.handler), retries=0, **kwargs)



@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()
