import json

import pytest

from modregistry.core.errors import DiscoveryError
from modregistry.github.urls import GitHubRepoInfo
from modregistry.mods.discover import discoverMods, isDescriptorPath

REPO = GitHubRepoInfo("someone", "mods")


def _tree(*paths: str) -> dict:
    return {
        "sha": "t",
        "tree": [{"path": path, "type": "tree" if "." not in path else "blob"} for path in paths],
    }


def test_isDescriptorPath():
    assert isDescriptorPath("modinfo.json", "modinfo.json")
    assert isDescriptorPath("mods/a/modinfo.json", "modinfo.json")
    assert not isDescriptorPath("mods/a/old_modinfo.json", "modinfo.json")


@pytest.mark.asyncio
async def test_empty_repository_yields_nothing(fake_github):
    fake_github.add("/repos/someone/mods/git/trees/main", _tree("README.md", "src"))
    progress = []

    async with fake_github.client() as client:
        found = await discoverMods(client, REPO, "main", lambda *args: progress.append(args))

    assert found == []
    assert progress == []


@pytest.mark.asyncio
async def test_discovers_mods_in_tree_order_and_reports_progress(fake_github):
    fake_github.add("/repos/someone/mods/git/trees/main", _tree(
        "mods", "mods/b", "mods/b/modinfo.json", "modinfo.json", "mods/a/modinfo.json",
    ))
    fake_github.add_file("someone", "mods", "mods/b/modinfo.json", json.dumps([
        {"type": "MOD_INFO", "id": "b_one", "name": "B One", "authors": ["Ünïcødé"]},
        {"type": "MOD_INFO", "id": "b_two", "name": "B Two"},
    ]))
    fake_github.add_file("someone", "mods", "modinfo.json", json.dumps({"type": "MOD_INFO", "id": "root", "name": "Root"}))
    fake_github.add_file("someone", "mods", "mods/a/modinfo.json", json.dumps({"type": "MOD_INFO", "id": "a", "name": "A"}))
    progress = []

    async with fake_github.client() as client:
        found = await discoverMods(client, REPO, "main", lambda *args: progress.append(args))

    assert [(mod.descriptor.id, mod.path) for mod in found] == [
        ("b_one", "mods/b"), ("b_two", "mods/b"), ("root", ""), ("a", "mods/a"),
    ]
    assert found[0].descriptor.authors == ["Ünïcødé"]
    assert [(current, total) for current, total, _ in progress] == [(1, 3), (2, 3), (3, 3)]


@pytest.mark.asyncio
async def test_single_file_failures_do_not_abort(fake_github):
    fake_github.add("/repos/someone/mods/git/trees/main", _tree(
        "broken/modinfo.json", "missing/modinfo.json", "good/modinfo.json",
    ))
    fake_github.add_file("someone", "mods", "broken/modinfo.json", "{ not json")
    fake_github.add_file("someone", "mods", "good/modinfo.json", json.dumps({"type": "MOD_INFO", "id": "good", "name": "Good"}))
    progress = []

    async with fake_github.client() as client:
        found = await discoverMods(client, REPO, "main", lambda *args: progress.append(args))

    assert [mod.descriptor.id for mod in found] == ["good"]
    assert [current for current, _, _ in progress] == [1, 2, 3]
    assert progress[0][2].startswith("Failed broken/modinfo.json")
    assert progress[1][2].startswith("Failed missing/modinfo.json")


@pytest.mark.asyncio
async def test_tree_failure_is_fatal(fake_github):
    async with fake_github.client() as client:
        with pytest.raises(DiscoveryError):
            await discoverMods(client, REPO, "main")


@pytest.mark.asyncio
async def test_custom_descriptor_file_name(fake_github):
    fake_github.add("/repos/someone/mods/git/trees/dev", _tree("x/mod.json", "y/modinfo.json"))
    fake_github.add_file("someone", "mods", "x/mod.json", json.dumps({"type": "MOD_INFO", "id": "x", "name": "X"}))

    async with fake_github.client() as client:
        found = await discoverMods(client, REPO, "dev", descriptorFileName="mod.json")

    assert [mod.path for mod in found] == ["x"]
