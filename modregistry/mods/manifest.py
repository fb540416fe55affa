# modregistry/mods/manifest.py
"""
Typed manifest record and the constants shared by validation, synthesis and
autoupdate.

A `ModManifest` is only built from data that already passed
`validateManifest`; the model itself carries types, not rules.
"""
from __future__ import annotations
import re
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

__all__ = [
    "SCHEMA_VERSION", "MOD_ID_PATTERN", "MOD_ID_RE", "COMMIT_SHA_RE",
    "BASE_GAME_ID", "LEGACY_BASE_GAME_ID", "BASE_GAME_DEFAULT_RANGE", "ANY_RANGE",
    "DEFAULT_LICENSE", "SHORT_DESCRIPTION_MAX", "SOURCE_TYPES", "AUTOUPDATE_TYPES",
    "AUTOUPDATE_RESERVED_KEYS", "AUTOUPDATE_TEMPLATE_TARGETS", "VERSION_PLACEHOLDER",
    "ModSource", "AutoupdateConfig", "ModManifest",
]



SCHEMA_VERSION = "1.0"

MOD_ID_PATTERN = r"^[a-z0-9][a-z0-9_-]*$"
MOD_ID_RE = re.compile(MOD_ID_PATTERN)
COMMIT_SHA_RE = re.compile(r"^[0-9a-f]{40}$")

BASE_GAME_ID = "bn"
LEGACY_BASE_GAME_ID = "dda"
BASE_GAME_DEFAULT_RANGE = ">=0.9.1"
ANY_RANGE = "*"

DEFAULT_LICENSE = "ALL-RIGHTS-RESERVED"
SHORT_DESCRIPTION_MAX = 200

SOURCE_TYPES = ("github_archive", "gitlab_archive", "direct_url")
AUTOUPDATE_TYPES = ("tag", "commit")

VERSION_PLACEHOLDER = "$version"
AUTOUPDATE_RESERVED_KEYS = frozenset({"type", "update_url", "updateUrl", "branch", "regex"})
# autoupdate template key -> dotted manifest path it rewrites
AUTOUPDATE_TEMPLATE_TARGETS: dict[str, str] = {
    "url": "source.url",
    "icon_url": "icon_url",
    "iconUrl": "icon_url",
    "commit_sha": "source.commit_sha",
    "commitSha": "source.commit_sha",
}



class ModSource(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["github_archive", "gitlab_archive", "direct_url"]
    url: str
    commit_sha: str | None = None
    extract_path: str | None = None



class AutoupdateConfig(BaseModel):
    """Autoupdate policy; keys other than the reserved ones are `$version` templates."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Literal["tag", "commit"]
    update_url: str | None = Field(default=None, validation_alias=AliasChoices("update_url", "updateUrl"))
    branch: str | None = None
    regex: str | None = None

    @property
    def templates(self) -> dict[str, str]:
        return {key: value for key, value in (self.model_extra or {}).items() if isinstance(value, str)}



class ModManifest(BaseModel):
    # Field declaration order is the canonical on-disk key order.
    model_config = ConfigDict(extra="forbid")

    schema_version: Literal["1.0"] = SCHEMA_VERSION
    id: str
    display_name: str
    short_description: str
    description: str | None = None
    author: list[str]
    license: str = DEFAULT_LICENSE
    homepage: str | None = None
    version: str
    dependencies: dict[str, str] | None = None
    conflicts: dict[str, str] | None = None
    source: ModSource
    categories: list[str] | None = None
    tags: list[str] | None = None
    icon_url: str | None = None
    autoupdate: AutoupdateConfig | None = None
    parent: str | None = None
    last_updated: str | None = None

    def toData(self) -> dict[str, Any]:
        """Plain mapping in canonical key order, unset optional fields omitted."""
        return self.model_dump(mode="json", exclude_none=True)