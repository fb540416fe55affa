# modregistry/mods/reconcile.py
from __future__ import annotations
import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from modregistry.mods.manifest import ModManifest
from modregistry.mods.validator import createManifest

logger = logging.getLogger(__name__)

__all__ = [
    "FieldPolicy", "DEFAULT_MERGE_POLICY", "IGNORED_FOR_EQUALITY", "ReconcileAction",
    "ReconcileResult", "mergeManifestData", "manifestsEqual", "reconcile",
]



FieldPolicy = Literal["existing", "generated", "generatedKeys"]
ReconcileAction = Literal["create", "update", "skip"]

# Top-level fields not listed here use "existing".
#   existing      - existing value wins, mappings recurse, lists are replaced
#   generated     - generated value replaces the existing one
#   generatedKeys - key set follows generated, values of surviving keys stay existing
DEFAULT_MERGE_POLICY: dict[str, FieldPolicy] = {
    "source": "generated",
    "version": "generated",
    "last_updated": "generated",
    "dependencies": "generatedKeys",
}

IGNORED_FOR_EQUALITY = frozenset({"last_updated"})



@dataclass(frozen=True)
class ReconcileResult:
    action: ReconcileAction
    result: ModManifest



def _mergeExistingWins(existing: Any, generated: Any) -> Any:
    if isinstance(generated, list):
        return copy.deepcopy(generated)
    if isinstance(existing, Mapping) and isinstance(generated, Mapping):
        out: dict[str, Any] = {key: copy.deepcopy(value) for key, value in existing.items()}
        for key, value in generated.items():
            out[key] = _mergeExistingWins(existing[key], value) if key in existing else copy.deepcopy(value)
        return out
    return copy.deepcopy(existing)



def _mergeGeneratedKeys(existing: Any, generated: Any) -> Any:
    if not (isinstance(existing, Mapping) and isinstance(generated, Mapping)):
        return copy.deepcopy(generated)
    return {
        key: copy.deepcopy(existing[key] if key in existing else value)
        for key, value in generated.items()
    }



def mergeManifestData(
    existing: Mapping[str, Any],
    generated: Mapping[str, Any],
    policy: Mapping[str, FieldPolicy] = DEFAULT_MERGE_POLICY,
) -> dict[str, Any]:
    """
    Merge plain manifest mappings. Fields only in `existing` survive, fields
    only in `generated` are added, shared fields follow `policy`.
    """
    out: dict[str, Any] = {}
    for key, value in existing.items():
        if key not in generated:
            out[key] = copy.deepcopy(value)
            continue
        mode = policy.get(key, "existing")
        if mode == "generated":
            out[key] = copy.deepcopy(generated[key])
        elif mode == "generatedKeys":
            out[key] = _mergeGeneratedKeys(value, generated[key])
        else:
            out[key] = _mergeExistingWins(value, generated[key])
    for key, value in generated.items():
        if key not in out:
            out[key] = copy.deepcopy(value)
    return out



def _comparable(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in IGNORED_FOR_EQUALITY}



def manifestsEqual(left: Mapping[str, Any] | ModManifest, right: Mapping[str, Any] | ModManifest) -> bool:
    """Deep equality that ignores `last_updated`; key order does not matter."""
    leftData = left.toData() if isinstance(left, ModManifest) else left
    rightData = right.toData() if isinstance(right, ModManifest) else right
    return _comparable(leftData) == _comparable(rightData)



def reconcile(
    existing: ModManifest | None,
    generated: ModManifest,
    policy: Mapping[str, FieldPolicy] = DEFAULT_MERGE_POLICY,
) -> ReconcileResult:
    """
    Decide what to do with a freshly synthesized manifest.

    Raises ManifestValidationError when the merged result breaks an invariant,
    e.g. a hand-set parent whose dependency disappeared upstream.
    """
    if existing is None:
        return ReconcileResult("create", generated)
    if manifestsEqual(existing, generated):
        return ReconcileResult("skip", existing)
    merged = mergeManifestData(existing.toData(), generated.toData(), policy)
    if manifestsEqual(merged, existing):
        # Curated fields account for every difference
        return ReconcileResult("skip", existing)
    logger.debug("Merged manifest %s with freshly generated data", generated.id)
    return ReconcileResult("update", createManifest(merged))
