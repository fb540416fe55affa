import copy
from datetime import datetime, timezone

import httpx
import pytest

from modregistry.core.errors import ManifestValidationError
from modregistry.github.urls import GitHubRepoInfo
from modregistry.mods.autoupdate import (
    applyVersionUpdate,
    getLatestCommitVersion,
    getLatestTag,
    getLatestVersion,
    resolveUpdateRepo,
    substituteVersion,
    updateAllManifests,
    updateManifestFile,
)
from modregistry.mods.store import loadManifestData, writeManifestFile
from modregistry.mods.validator import createManifest

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
TAGS_PATH = "/repos/someone/arcana-patches/tags"
COMMIT_PATH = "/repos/someone/arcana-patches/commits/main"
HEAD_SHA = "abcdef1234567890abcdef1234567890abcdef12"
ARCHIVE = "https://github.com/someone/arcana-patches/archive/refs/tags/$version.zip"


def _tag(name: str, sha: str = "c" * 40) -> dict:
    return {"name": name, "commit": {"sha": sha, "url": "https://api.github.invalid/c"}}


class HeadRecorder:
    def __init__(self, status: int = 200):
        self.status = status
        self.urls: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        return httpx.Response(self.status)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def tag_manifest(manifest_data) -> dict:
    data = copy.deepcopy(manifest_data)
    data["source"]["url"] = ARCHIVE.replace("$version", "v1.2.3")
    data["autoupdate"] = {"type": "tag", "regex": r"^v\d", "url": ARCHIVE}
    return data


def _write(tmp_path, data, name="arcana_foo_patch.yaml"):
    path = tmp_path / name
    writeManifestFile(path, data)
    return path


@pytest.mark.asyncio
async def test_tag_mode_updates_version_and_templates(tmp_path, fake_github, tag_manifest):
    fake_github.add(TAGS_PATH, [_tag("v1.2.3"), _tag("nightly"), _tag("v1.10.0", "d" * 40), _tag("v1.9.0")])
    path = _write(tmp_path, tag_manifest)
    heads = HeadRecorder()

    async with fake_github.client() as client, heads.client() as checkClient:
        result = await updateManifestFile(path, client, checkClient=checkClient, now=NOW)

    assert result.error is None
    assert result.updated
    assert (result.oldVersion, result.newVersion) == ("1.2.3", "1.10.0")
    assert heads.urls == ["https://github.com/someone/arcana-patches/archive/refs/tags/v1.10.0.zip"]

    written = loadManifestData(path)
    assert written["version"] == "1.10.0"
    assert written["source"]["url"].endswith("/v1.10.0.zip")
    assert written["last_updated"] == "2025-06-01T12:00:00.000Z"
    assert written["autoupdate"]["url"] == ARCHIVE


@pytest.mark.asyncio
async def test_stored_version_ahead_of_upstream_is_a_no_op(tmp_path, fake_github, tag_manifest):
    tag_manifest["version"] = "99.0.0"
    fake_github.add(TAGS_PATH, [_tag("v1.2.3"), _tag("v2.0.0")])
    path = _write(tmp_path, tag_manifest)
    before = path.read_bytes()

    async with fake_github.client() as client:
        result = await updateManifestFile(path, client, now=NOW)

    assert (result.updated, result.error) == (False, None)
    assert path.read_bytes() == before


@pytest.mark.asyncio
async def test_unreachable_url_leaves_file_untouched(tmp_path, fake_github, tag_manifest):
    fake_github.add(TAGS_PATH, [_tag("v1.3.0")])
    path = _write(tmp_path, tag_manifest)
    before = path.read_bytes()
    heads = HeadRecorder(status=404)

    async with fake_github.client() as client, heads.client() as checkClient:
        result = await updateManifestFile(path, client, checkClient=checkClient, now=NOW)

    assert not result.updated
    assert "URL check failed" in result.error
    assert "(404)" in result.error
    assert path.read_bytes() == before
    assert sorted(entry.name for entry in tmp_path.iterdir()) == ["arcana_foo_patch.yaml"]


@pytest.mark.asyncio
async def test_no_matching_tag_is_an_error(tmp_path, fake_github, tag_manifest):
    fake_github.add(TAGS_PATH, [_tag("nightly")])
    path = _write(tmp_path, tag_manifest)

    async with fake_github.client() as client:
        result = await updateManifestFile(path, client, now=NOW)

    assert "could not determine latest version" in result.error


@pytest.mark.asyncio
async def test_non_semver_tag_is_an_error(tmp_path, fake_github, tag_manifest):
    tag_manifest["autoupdate"].pop("regex")
    fake_github.add(TAGS_PATH, [_tag("release-7")])
    path = _write(tmp_path, tag_manifest)

    async with fake_github.client() as client:
        result = await updateManifestFile(path, client, now=NOW)

    assert "not a valid SemVer version" in result.error


@pytest.mark.asyncio
async def test_api_failure_is_reported_per_file(tmp_path, fake_github, tag_manifest):
    path = _write(tmp_path, tag_manifest)

    async with fake_github.client() as client:
        result = await updateManifestFile(path, client, now=NOW)

    assert "GitHub API 404" in result.error


@pytest.mark.asyncio
async def test_malformed_tag_payload_is_reported_per_file(tmp_path, fake_github, tag_manifest):
    fake_github.add(TAGS_PATH, [{"name": "v9.0.0"}])
    path = _write(tmp_path, tag_manifest)
    before = path.read_bytes()

    async with fake_github.client() as client:
        result = await updateManifestFile(path, client, now=NOW)

    assert not result.updated
    assert "unexpected payload" in result.error
    assert path.read_bytes() == before


@pytest.mark.asyncio
async def test_commit_mode_uses_commit_date_and_is_stable(tmp_path, fake_github, manifest_data):
    data = copy.deepcopy(manifest_data)
    data["source"]["commit_sha"] = "0" * 40
    data["autoupdate"] = {"type": "commit"}
    fake_github.add(COMMIT_PATH, {
        "sha": HEAD_SHA,
        "commit": {"committer": {"date": "2025-01-02T23:30:00Z"}, "author": {"date": "2024-12-31T00:00:00Z"}},
    })
    path = _write(tmp_path, data)
    heads = HeadRecorder()

    async with fake_github.client() as client, heads.client() as checkClient:
        first = await updateManifestFile(path, client, checkClient=checkClient, now=NOW)
        second = await updateManifestFile(path, client, checkClient=checkClient, now=datetime(2025, 7, 1, tzinfo=timezone.utc))

    assert first.updated
    assert first.newVersion == "2025.01.02-abcdef1"
    written = loadManifestData(path)
    assert written["source"]["commit_sha"] == HEAD_SHA
    assert heads.urls == []
    assert (second.updated, second.error) == (False, None)


@pytest.mark.asyncio
async def test_getLatestCommitVersion_falls_back_to_now(fake_github):
    fake_github.add(COMMIT_PATH, {"sha": HEAD_SHA})
    async with fake_github.client() as client:
        latest = await getLatestCommitVersion(client, GitHubRepoInfo("someone", "arcana-patches"), now=NOW)
    assert latest.version == "2025.06.01-abcdef1"
    assert latest.commitSha == HEAD_SHA


@pytest.mark.asyncio
async def test_manifest_without_policy_is_left_alone(tmp_path, fake_github, manifest_data):
    path = _write(tmp_path, manifest_data)
    async with fake_github.client() as client:
        result = await updateManifestFile(path, client, now=NOW)
    assert (result.updated, result.skipped, result.error) == (False, False, None)
    assert fake_github.requests == []


@pytest.mark.asyncio
async def test_unresolvable_repository_is_an_error(tmp_path, fake_github, manifest_data):
    data = copy.deepcopy(manifest_data)
    data["homepage"] = "https://mods.example.invalid/foo"
    data["source"] = {"type": "direct_url", "url": "https://cdn.example.invalid/foo.zip"}
    data["autoupdate"] = {"type": "tag"}
    path = _write(tmp_path, data)
    async with fake_github.client() as client:
        result = await updateManifestFile(path, client, now=NOW)
    assert result.error == "no GitHub repository to check for updates"


def test_resolveUpdateRepo_prefers_update_url(tag_manifest):
    tag_manifest["autoupdate"]["updateUrl"] = "https://github.com/upstream/real-repo"
    assert resolveUpdateRepo(createManifest(tag_manifest)) == GitHubRepoInfo("upstream", "real-repo")
    del tag_manifest["autoupdate"]["updateUrl"]
    del tag_manifest["homepage"]
    assert resolveUpdateRepo(createManifest(tag_manifest)) == GitHubRepoInfo("someone", "arcana-patches")


def test_substituteVersion_keeps_tag_text():
    assert substituteVersion("https://x.invalid/$version.zip", "v2.0") == "https://x.invalid/v2.0.zip"
    assert substituteVersion("no placeholder", "v2.0") == "no placeholder"


def test_applyVersionUpdate_rewrites_icon_and_source(tag_manifest):
    tag_manifest["icon_url"] = "https://x.invalid/icons/v1.2.3.png"
    tag_manifest["autoupdate"]["iconUrl"] = "https://x.invalid/icons/$version.png"
    tag_manifest["autoupdate"]["homepage"] = "https://ignored.invalid/$version"
    manifest = createManifest(tag_manifest)

    updated = applyVersionUpdate(manifest, "v2.0.0", now=NOW)

    assert updated.version == "2.0.0"
    assert updated.source.url == "https://github.com/someone/arcana-patches/archive/refs/tags/v2.0.0.zip"
    assert updated.icon_url == "https://x.invalid/icons/v2.0.0.png"
    assert updated.homepage == manifest.homepage
    assert updated.last_updated == "2025-06-01T12:00:00.000Z"
    assert manifest.version == "1.2.3"


def test_applyVersionUpdate_rejects_unusable_version(tag_manifest):
    with pytest.raises(ManifestValidationError):
        applyVersionUpdate(createManifest(tag_manifest), "v2.0", now=NOW)


@pytest.mark.asyncio
async def test_getLatestTag_and_getLatestVersion(fake_github, tag_manifest):
    fake_github.add(TAGS_PATH, [_tag("v0.9.0"), _tag("v1.0.0-rc.1"), _tag("v1.0.0"), _tag("experimental")])
    repo = GitHubRepoInfo("someone", "arcana-patches")
    async with fake_github.client() as client:
        assert await getLatestTag(client, repo, r"^v") == "v1.0.0"
        assert await getLatestVersion(client, createManifest(tag_manifest)) == "v1.0.0"
        tag_manifest.pop("autoupdate")
        assert await getLatestVersion(client, createManifest(tag_manifest)) is None


@pytest.mark.asyncio
async def test_updateAllManifests_counts_outcomes(tmp_path, fake_github, tag_manifest, manifest_data):
    fake_github.add(TAGS_PATH, [_tag("v1.3.0")])
    _write(tmp_path, tag_manifest, "a_updates.yaml")

    ignored = copy.deepcopy(tag_manifest)
    ignored["id"] = "ignored_mod"
    ignored.pop("parent")
    _write(tmp_path, ignored, "b_ignored.yaml")

    _write(tmp_path, manifest_data, "c_static.yaml")
    (tmp_path / "d_broken.yaml").write_text("id: [", encoding="utf-8")
    _write(tmp_path, tag_manifest, "_example.yaml")
    (tmp_path / ".manifestignore").write_text("github.com/someone/arcana-patches/ignored_mod\n", encoding="utf-8")

    seen = []
    heads = HeadRecorder()
    async with fake_github.client() as client, heads.client() as checkClient:
        summary = await updateAllManifests(tmp_path, client, checkClient=checkClient, now=NOW, onResult=seen.append)

    assert (summary.total, summary.updated, summary.errors, summary.skipped) == (4, 1, 1, 1)
    assert [result.path.rsplit("/", 1)[-1] for result in seen] == [
        "a_updates.yaml", "b_ignored.yaml", "c_static.yaml", "d_broken.yaml",
    ]
    assert loadManifestData(tmp_path / "_example.yaml")["version"] == "1.2.3"


@pytest.mark.asyncio
async def test_ignored_manifest_is_skipped_before_validation(tmp_path, fake_github, tag_manifest):
    tag_manifest["short_description"] = "x" * 300
    path = _write(tmp_path, tag_manifest)
    (tmp_path / ".manifestignore").write_text("# frozen\ngithub.com/someone/*/arcana_foo_patch\n", encoding="utf-8")

    async with fake_github.client() as client:
        summary = await updateAllManifests(tmp_path, client, now=NOW)

    assert (summary.total, summary.skipped, summary.errors) == (1, 1, 0)
    assert summary.results[0].manifestId == "arcana_foo_patch"
    assert summary.results[0].oldVersion == "1.2.3"
    assert fake_github.requests == []
