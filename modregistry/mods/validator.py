# modregistry/mods/validator.py
"""
Two-pass manifest validation.

The structural pass walks the raw mapping field by field (types, required
fields, patterns, lengths, unknown keys). The semantic pass checks the
cross-field invariants and only runs on a structurally valid candidate.
Every failing rule is reported; nothing short-circuits.

Each issue renders as one greppable line:

    <path>: <message> [<constraint>]
"""
from __future__ import annotations
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from modregistry.core.errors import ManifestValidationError
from modregistry.mods.manifest import (
    AUTOUPDATE_TYPES,
    COMMIT_SHA_RE,
    MOD_ID_PATTERN,
    MOD_ID_RE,
    SCHEMA_VERSION,
    SHORT_DESCRIPTION_MAX,
    SOURCE_TYPES,
    ModManifest,
)
from modregistry.semver.semver import isValidRange, isValidVersion

logger = logging.getLogger(__name__)

__all__ = [
    "ValidationIssue", "ValidationReport", "validateManifest", "createManifest",
    "checkManifest", "hasParentIdPrefix", "detectParentMod", "PARENT_ID_SEPARATORS",
]



PARENT_ID_SEPARATORS = frozenset(" @_/|\\-")



@dataclass(frozen=True)
class ValidationIssue:
    path: str
    constraint: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message} [{self.constraint}]"



@dataclass(frozen=True)
class ValidationReport:
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def valid(self) -> bool:
        return not self.issues

    @property
    def errorCount(self) -> int:
        return len(self.issues)

    @property
    def diagnostics(self) -> str:
        return "\n".join(str(issue) for issue in self.issues)



# ----------------------------------------------
#               Structural rules
# ----------------------------------------------

_Issues = list[ValidationIssue]


def _typeName(value: Any) -> str:
    if value is None:
        return "null"
    return type(value).__name__


def _expectString(issues: _Issues, path: str, value: Any) -> bool:
    if isinstance(value, str):
        return True
    issues.append(ValidationIssue(path, "type", f"expected a string, got {_typeName(value)}"))
    return False


def _checkNonEmptyString(issues: _Issues, path: str, value: Any) -> None:
    if _expectString(issues, path, value) and not value.strip():
        issues.append(ValidationIssue(path, "min_length", "must not be empty"))


def _checkModId(issues: _Issues, path: str, value: Any) -> None:
    if _expectString(issues, path, value) and not MOD_ID_RE.fullmatch(value):
        issues.append(ValidationIssue(path, "mod_id", f"'{value}' must match {MOD_ID_PATTERN}"))


def _checkUrl(issues: _Issues, path: str, value: Any) -> None:
    if not _expectString(issues, path, value):
        return
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        issues.append(ValidationIssue(path, "url", f"'{value}' is not an http(s) URL"))


def _checkVersion(issues: _Issues, path: str, value: Any) -> None:
    if _expectString(issues, path, value) and not isValidVersion(value):
        issues.append(ValidationIssue(path, "semver", f"'{value}' is not a valid SemVer version"))


def _checkShortDescription(issues: _Issues, path: str, value: Any) -> None:
    if _expectString(issues, path, value) and len(value) > SHORT_DESCRIPTION_MAX:
        issues.append(ValidationIssue(
            path, "max_length", f"must be at most {SHORT_DESCRIPTION_MAX} characters, got {len(value)}"
        ))


def _checkSchemaVersion(issues: _Issues, path: str, value: Any) -> None:
    if value != SCHEMA_VERSION:
        issues.append(ValidationIssue(path, "literal", f"must be \"{SCHEMA_VERSION}\", got {value!r}"))


def _checkTimestamp(issues: _Issues, path: str, value: Any) -> None:
    if not _expectString(issues, path, value):
        return
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        issues.append(ValidationIssue(path, "iso_datetime", f"'{value}' is not an ISO-8601 timestamp"))


def _stringListRule(minItems: int) -> Callable[[_Issues, str, Any], None]:
    def _check(issues: _Issues, path: str, value: Any) -> None:
        if not isinstance(value, list):
            issues.append(ValidationIssue(path, "type", f"expected a list, got {_typeName(value)}"))
            return
        if len(value) < minItems:
            issues.append(ValidationIssue(path, "min_items", f"must contain at least {minItems} item(s)"))
        for idx, item in enumerate(value):
            _expectString(issues, f"{path}.{idx}", item)
    return _check


def _checkRangeMap(issues: _Issues, path: str, value: Any) -> None:
    if not isinstance(value, Mapping):
        issues.append(ValidationIssue(path, "type", f"expected a mapping, got {_typeName(value)}"))
        return
    for key, rangeExpr in value.items():
        if not isinstance(key, str) or not key.strip():
            issues.append(ValidationIssue(path, "key", f"mod id keys must be non-empty strings, got {key!r}"))
            continue
        itemPath = f"{path}.{key}"
        if _expectString(issues, itemPath, rangeExpr) and not isValidRange(rangeExpr):
            issues.append(ValidationIssue(itemPath, "semver_range", f"'{rangeExpr}' is not a valid SemVer range"))


def _checkCommitSha(issues: _Issues, path: str, value: Any) -> None:
    if _expectString(issues, path, value) and not COMMIT_SHA_RE.fullmatch(value):
        issues.append(ValidationIssue(path, "commit_sha", "must be exactly 40 lowercase hex characters"))


def _choiceRule(choices: tuple[str, ...]) -> Callable[[_Issues, str, Any], None]:
    def _check(issues: _Issues, path: str, value: Any) -> None:
        if value not in choices:
            issues.append(ValidationIssue(path, "enum", f"must be one of {', '.join(choices)}, got {value!r}"))
    return _check


def _checkRegex(issues: _Issues, path: str, value: Any) -> None:
    if not _expectString(issues, path, value):
        return
    try:
        re.compile(value)
    except re.error as err:
        issues.append(ValidationIssue(path, "regex", f"invalid regular expression: {err}"))


# (required, rule) per key; dict order is the order issues are reported in
_Rule = Callable[[_Issues, str, Any], None]

_SOURCE_RULES: dict[str, tuple[bool, _Rule]] = {
    "type": (True, _choiceRule(SOURCE_TYPES)),
    "url": (True, _checkUrl),
    "commit_sha": (False, _checkCommitSha),
    "extract_path": (False, _expectString),
}

_AUTOUPDATE_RULES: dict[str, tuple[bool, _Rule]] = {
    "type": (True, _choiceRule(AUTOUPDATE_TYPES)),
    "update_url": (False, _checkUrl),
    "updateUrl": (False, _checkUrl),
    "branch": (False, _checkNonEmptyString),
    "regex": (False, _checkRegex),
}


def _checkRecord(
    rules: dict[str, tuple[bool, _Rule]],
    *,
    allowUnknown: bool = False,
) -> _Rule:
    def _check(issues: _Issues, path: str, value: Any) -> None:
        if not isinstance(value, Mapping):
            issues.append(ValidationIssue(path, "type", f"expected a mapping, got {_typeName(value)}"))
            return
        _applyRules(issues, rules, value, prefix=f"{path}.", allowUnknown=allowUnknown)
    return _check


_MANIFEST_RULES: dict[str, tuple[bool, _Rule]] = {
    "schema_version": (True, _checkSchemaVersion),
    "id": (True, _checkModId),
    "display_name": (True, _checkNonEmptyString),
    "short_description": (True, _checkShortDescription),
    "description": (False, _expectString),
    "author": (True, _stringListRule(1)),
    "license": (False, _checkNonEmptyString),
    "homepage": (False, _checkUrl),
    "version": (True, _checkVersion),
    "dependencies": (False, _checkRangeMap),
    "conflicts": (False, _checkRangeMap),
    "source": (True, _checkRecord(_SOURCE_RULES)),
    "categories": (False, _stringListRule(0)),
    "tags": (False, _stringListRule(0)),
    "icon_url": (False, _checkUrl),
    "autoupdate": (False, _checkRecord(_AUTOUPDATE_RULES, allowUnknown=True)),
    "parent": (False, _checkModId),
    "last_updated": (False, _checkTimestamp),
}


def _applyRules(
    issues: _Issues,
    rules: dict[str, tuple[bool, _Rule]],
    data: Mapping[str, Any],
    *,
    prefix: str = "",
    allowUnknown: bool = False,
) -> None:
    for key, (required, rule) in rules.items():
        if key not in data or data[key] is None:
            if required:
                issues.append(ValidationIssue(f"{prefix}{key}", "required", "required field is missing"))
            continue
        rule(issues, f"{prefix}{key}", data[key])
    if allowUnknown:
        return
    for key in data:
        if key not in rules:
            issues.append(ValidationIssue(f"{prefix}{key}", "unknown_key", "unknown field"))


# ----------------------------------------------
#                Semantic rules
# ----------------------------------------------

def _lowerKeys(mapping: Mapping[str, Any] | None) -> set[str]:
    return {str(key).lower() for key in (mapping or {})}


def _ruleParentInDependencies(data: Mapping[str, Any]) -> ValidationIssue | None:
    parent = data.get("parent")
    if not parent:
        return None
    if parent.lower() in _lowerKeys(data.get("dependencies")):
        return None
    return ValidationIssue(
        "parent", "parent_in_dependencies", f"parent '{parent}' must also be listed in dependencies"
    )


def _ruleParentNotSelf(data: Mapping[str, Any]) -> ValidationIssue | None:
    parent = data.get("parent")
    if parent and parent.lower() == str(data.get("id", "")).lower():
        return ValidationIssue("parent", "parent_not_self", "a mod cannot be its own parent")
    return None


def _ruleDependencyConflictDisjoint(data: Mapping[str, Any]) -> ValidationIssue | None:
    overlap = _lowerKeys(data.get("dependencies")) & _lowerKeys(data.get("conflicts"))
    if not overlap:
        return None
    return ValidationIssue(
        "conflicts",
        "dependency_conflict",
        f"mods listed in both dependencies and conflicts: {', '.join(sorted(overlap))}",
    )


SEMANTIC_RULES: tuple[Callable[[Mapping[str, Any]], ValidationIssue | None], ...] = (
    _ruleParentInDependencies,
    _ruleParentNotSelf,
    _ruleDependencyConflictDisjoint,
)


# ----------------------------------------------
#                   Public API
# ----------------------------------------------

def validateManifest(candidate: Any) -> ValidationReport:
    """Validate anything: a mapping, a `ModManifest`, or garbage. Never raises."""
    if isinstance(candidate, ModManifest):
        candidate = candidate.toData()
    if not isinstance(candidate, Mapping):
        return ValidationReport((ValidationIssue("(root)", "type", f"expected a mapping, got {_typeName(candidate)}"),))

    issues: _Issues = []
    _applyRules(issues, _MANIFEST_RULES, candidate)
    if issues:
        return ValidationReport(tuple(issues))

    for rule in SEMANTIC_RULES:
        issue = rule(candidate)
        if issue is not None:
            issues.append(issue)
    return ValidationReport(tuple(issues))



def createManifest(data: Mapping[str, Any]) -> ModManifest:
    """Typed manifest from plain data; raises ManifestValidationError when it does not validate."""
    report = validateManifest(data)
    if not report.valid:
        raise ManifestValidationError(report)
    return ModManifest.model_validate(dict(data))



def checkManifest(candidate: Any, label: str | None = None) -> tuple[ValidationReport, str]:
    """Validate and render a human-readable report block."""
    report = validateManifest(candidate)
    lines: list[str] = []
    if label:
        lines.append(f"Checking: {label}")
    if report.valid:
        lines.append("  ✓ Valid")
    else:
        lines.extend(f"  ✗ {issue}" for issue in report.issues)
    return report, "\n".join(lines)



def hasParentIdPrefix(modId: str, parentId: str) -> bool:
    """True when `modId` is `parentId` followed by a separator and something more."""
    modId = modId.lower()
    parentId = parentId.lower()
    if not parentId or len(modId) <= len(parentId):
        return False
    return modId.startswith(parentId) and modId[len(parentId)] in PARENT_ID_SEPARATORS



def detectParentMod(manifest: Mapping[str, Any] | ModManifest) -> str | None:
    """
    Infer the containing mod from the naming convention: the first dependency
    whose id prefixes this mod's id (followed by a separator) wins.
    """
    if isinstance(manifest, ModManifest):
        modId, dependencies = manifest.id, manifest.dependencies
    else:
        modId, dependencies = manifest.get("id"), manifest.get("dependencies")
    if not modId or not dependencies:
        return None
    for depId in dependencies:
        if hasParentIdPrefix(str(modId), str(depId)):
            return str(depId)
    return None
