# modregistry/mods/modinfo.py
"""Parser for the game's native mod descriptor (modinfo.json)."""
from __future__ import annotations
import json
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from modregistry.mods.manifest import ANY_RANGE, BASE_GAME_DEFAULT_RANGE, BASE_GAME_ID, LEGACY_BASE_GAME_ID

logger = logging.getLogger(__name__)

__all__ = [
    "MOD_INFO_TYPE", "MOD_CATEGORIES", "ModInfo", "parseModInfo",
    "convertDependencies", "stripColorCodes", "modInfoToManifestBase",
]



MOD_INFO_TYPE = "MOD_INFO"

ModCategory = Literal[
    "total_conversion",
    "content",
    "items",
    "creatures",
    "misc_additions",
    "buildings",
    "vehicles",
    "rebalance",
    "magical",
    "item_exclude",
    "monster_exclude",
    "graphical",
]
MOD_CATEGORIES: tuple[str, ...] = get_args(ModCategory)

_COLOR_TAG_RE = re.compile(r"</?color[^>]*>")



class ModInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["MOD_INFO"]
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    authors: list[str] | None = None
    maintainers: list[str] | None = None
    description: str | None = None
    category: ModCategory | None = None
    dependencies: list[str] | None = None
    license: str | None = None
    version: str | None = None
    obsolete: bool | None = None



def parseModInfo(content: str) -> list[ModInfo]:
    """
    Parse the text of one descriptor file (an object or an array of objects).

    Non-mod entries are filtered out; mod entries that fail validation are
    dropped with a warning. Malformed JSON raises ValueError.
    """
    data = json.loads(content)
    entries = data if isinstance(data, list) else [data]

    out: list[ModInfo] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, Mapping) or entry.get("type") != MOD_INFO_TYPE:
            continue
        try:
            out.append(ModInfo.model_validate(entry))
        except ValidationError as err:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in err.errors()
            )
            logger.warning("Dropping invalid MOD_INFO entry #%d (id=%r): %s", idx, entry.get("id"), problems)
    return out



def convertDependencies(deps: Iterable[str] | None) -> dict[str, str] | None:
    """
    Descriptor dependency ids -> manifest dependency mapping.

    Ids are lowercased and the legacy base-game alias becomes the base-game id.
    The base game gets its minimum-version default and everything else the
    wildcard.
    """
    if not deps:
        return None
    out: dict[str, str] = {}
    for dep in deps:
        depId = str(dep).strip().lower()
        if not depId:
            continue
        if depId == LEGACY_BASE_GAME_ID:
            depId = BASE_GAME_ID
        if depId == BASE_GAME_ID:
            out[depId] = BASE_GAME_DEFAULT_RANGE
        else:
            out[depId] = ANY_RANGE
    return out or None



def stripColorCodes(text: str) -> str:
    """Remove in-game <color_x>...</color> markup."""
    return _COLOR_TAG_RE.sub("", text).strip()



def modInfoToManifestBase(modinfo: ModInfo) -> dict[str, Any]:
    authors = modinfo.authors or []
    return {
        "id": modinfo.id,
        "display_name": stripColorCodes(modinfo.name),
        "description": stripColorCodes(modinfo.description) if modinfo.description else None,
        "author": ", ".join(authors) if authors else None,
        "dependencies": convertDependencies(modinfo.dependencies),
    }
