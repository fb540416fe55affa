# modregistry/semver/semver.py
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Literal

__all__ = [
    "SemVerVersion", "SemVerComparator", "SemVerRequirement", "SemVerRange",
    "parseVersion", "tryParseVersion", "parseRange", "versionSatisfiesRange",
    "isValidVersion", "isValidRange", "isCommitStamp", "compareSemVer",
    "compareVersions", "normalizeVersion",
]



SEMVER_PATTERN_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)"
    r"\.(?P<minor>0|[1-9]\d*)"
    r"\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>(?:0|[1-9]\d*|[0-9A-Za-z-]*[A-Za-z-][0-9A-Za-z-]*)"
    r"(?:\.(?:0|[1-9]\d*|[0-9A-Za-z-]*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

# Version stamp written by commit-tracking autoupdate: YYYY.MM.DD-<short sha>
COMMIT_STAMP_RE = re.compile(r"^\d{4}\.\d{2}\.\d{2}-[0-9a-f]{7}$")

_WILDCARDS = ("x", "X", "*")
_OPERATORS = ("<=", ">=", "==", "<", ">", "=")
_FALLBACK_SPLIT_RE = re.compile(r"[.\-_]")



@total_ordering
@dataclass(frozen=True)
class SemVerVersion:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        prerelease = f"-{'.'.join(self.prerelease)}" if self.prerelease else ""
        build = f"+{'.'.join(self.build)}" if self.build else ""
        return f"{base}{prerelease}{build}"

    def _prereleaseCmpKey(self) -> tuple:
        # Numeric identifiers have lower precedence than non-numeric.
        # We encode numeric as (0, int), non-numeric as (1, str),
        # so numeric < non-numeric in tuple comparison.
        parts: list[tuple[int, int | str]] = []
        for ident in self.prerelease:
            if ident.isdigit():
                parts.append((0, int(ident)))
            else:
                parts.append((1, ident))
        return tuple(parts)

    def _cmpKey(self) -> tuple:
        # Build is ignored for ordering
        # No prerelease version is preferred over any prerelease version
        releaseFlag = 1 if not self.prerelease else 0
        return (
            self.major,
            self.minor,
            self.patch,
            releaseFlag,
            self._prereleaseCmpKey()
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVerVersion):
            return NotImplemented
        return (
            self.major == other.major
            and self.minor == other.minor
            and self.patch == other.patch
            and self.prerelease == other.prerelease
        )

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.prerelease))

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVerVersion):
            return NotImplemented
        return self._cmpKey() < other._cmpKey()



def normalizeVersion(raw: str) -> str:
    """Strip surrounding whitespace and a single leading 'v'/'V' from a version-like string."""
    raw = raw.strip()
    if len(raw) > 1 and raw[0] in ("v", "V") and raw[1].isdigit():
        return raw[1:]
    return raw



def _splitCore(raw: str) -> tuple[str, str]:
    sepIndex = len(raw)
    for ch in ("-", "+"):
        idx = raw.find(ch)
        if idx != -1 and idx < sepIndex:
            sepIndex = idx
    return raw[:sepIndex], raw[sepIndex:]



def parseVersion(raw: str, *, allowPartial: bool = False) -> SemVerVersion:
    """
    Parse a semantic version string into SemVerVersion.

    Accepted forms (examples):
        "1.2.3"
        "1.2.3-alpha"
        "1.2.3-alpha.1"
        "1.2.3+build.1"
        "1.2.3-alpha+build.1"
        "v1.2.3"

    With allowPartial=True the core may omit minor/patch ("1" -> 1.0.0,
    "1.2" -> 1.2.0). Range expressions use that; exact versions do not.

    Rejected:
        ".1", "1.", "1..3", "1.2.3.4", "01.2.3" (leading zeroes), etc.
    """
    if raw is None:
        raise ValueError("Version string cannot be None")

    if not isinstance(raw, str):
        raise TypeError(f"Version string must be a string type, got {type(raw).__name__}")

    raw = raw.strip()
    if not raw:
        raise ValueError("Version string cannot be empty or whitespace only")

    # Accept a single 'v' and remove it (v1.2.3 -> 1.2.3)
    raw = normalizeVersion(raw)

    core, suffix = _splitCore(raw)

    coreParts = core.split(".")
    minParts = 1 if allowPartial else 3
    if not minParts <= len(coreParts) <= 3:
        raise ValueError(f"Invalid version core {core!r} in {raw!r}")

    # Reject empty components: ".1", "1.", "1..3"
    if any(part == "" for part in coreParts):
        raise ValueError(f"Empty numeric component in version {raw!r}")

    numericParts: list[int] = []
    for part in coreParts:
        if not re.fullmatch(r"0|[1-9]\d*", part):
            raise ValueError(f"Invalid numeric component {part!r} in version {raw!r}")
        numericParts.append(int(part))

    while len(numericParts) < 3:
        numericParts.append(0)

    major, minor, patch = numericParts

    normalized = f"{major}.{minor}.{patch}{suffix}"

    mtch = SEMVER_PATTERN_RE.match(normalized)
    if not mtch:
        raise ValueError(f"Invalid semantic version {raw!r} (normalized {normalized!r})")

    prereleaseGroup = mtch.group("prerelease")
    buildGroup = mtch.group("build")

    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()
    if prereleaseGroup is not None:
        prerelease = tuple(prereleaseGroup.split("."))
    if buildGroup is not None:
        build = tuple(buildGroup.split("."))

    return SemVerVersion(
        major=major,
        minor=minor,
        patch=patch,
        prerelease=prerelease,
        build=build
    )



def tryParseVersion(raw: object) -> SemVerVersion | None:
    if not isinstance(raw, str):
        return None
    try:
        return parseVersion(raw)
    except ValueError:
        return None



@dataclass(frozen=True)
class SemVerComparator:
    operator: Literal["<", "<=", ">", ">=", "=="]
    version: SemVerVersion



@dataclass(frozen=True)
class SemVerRequirement:
    # All comparators are AND-ed. No comparators means "any version".
    comparators: tuple[SemVerComparator, ...] = ()

    @property
    def isAny(self) -> bool:
        return not self.comparators



@dataclass(frozen=True)
class SemVerRange:
    # Alternatives are OR-ed ("||").
    alternatives: tuple[SemVerRequirement, ...]
    raw: str = ""



@dataclass(frozen=True)
class _Partial:
    """A possibly incomplete version such as '1', '1.2', '1.x' or '*'."""
    major: int | None
    minor: int | None
    patch: int | None
    prerelease: tuple[str, ...] = ()

    @property
    def isWildcard(self) -> bool:
        return self.major is None

    @property
    def isComplete(self) -> bool:
        return self.patch is not None

    def floor(self) -> SemVerVersion:
        return SemVerVersion(self.major or 0, self.minor or 0, self.patch or 0, self.prerelease)

    def nextCeiling(self) -> SemVerVersion:
        """First version above everything this partial covers (only for incomplete partials)."""
        assert self.major is not None
        if self.minor is None:
            return SemVerVersion(self.major + 1, 0, 0, ("0",))
        return SemVerVersion(self.major, self.minor + 1, 0, ("0",))



def _parsePartial(token: str, rawRange: str) -> _Partial:
    token = normalizeVersion(token)
    if token in _WILDCARDS:
        return _Partial(None, None, None)
    core, suffix = _splitCore(token)
    parts = core.split(".")
    if not 1 <= len(parts) <= 3 or any(part == "" for part in parts):
        raise ValueError(f"Invalid version {token!r} in range {rawRange!r}")

    numbers: list[int | None] = []
    sawWildcard = False
    for part in parts:
        if part in _WILDCARDS:
            sawWildcard = True
            numbers.append(None)
            continue
        if sawWildcard:
            raise ValueError(f"Numeric component after wildcard in {token!r} ({rawRange!r})")
        if not re.fullmatch(r"0|[1-9]\d*", part):
            raise ValueError(f"Invalid numeric component {part!r} in range {rawRange!r}")
        numbers.append(int(part))
    while len(numbers) < 3:
        numbers.append(None)

    prerelease: tuple[str, ...] = ()
    if suffix:
        if numbers[2] is None:
            raise ValueError(f"Prerelease on incomplete version {token!r} in range {rawRange!r}")
        full = parseVersion(token)
        prerelease = full.prerelease
    return _Partial(numbers[0], numbers[1], numbers[2], prerelease)



def _caretToComparators(partial: _Partial) -> list[SemVerComparator]:
    """
    ^M.m.p -> caret expansion following SemVer semantics:

    - If M > 0:
        >= M.m.p  and  < (M+1).0.0
    - If M == 0 and m > 0:
        >= 0.m.p  and  < 0.(m+1).0
    - If M == 0 and m == 0
        >= 0.0.p  and  < 0.0.(p+1)

    Missing components behave as x-ranges (^1.2.x == >=1.2.0 <2.0.0, ^0.x == <1.0.0).
    """
    if partial.isWildcard:
        return []
    major, minor, patch = partial.major, partial.minor, partial.patch
    assert major is not None
    greaterOrEqual = SemVerComparator(">=", partial.floor())
    if major > 0 or minor is None:
        upperVersion = SemVerVersion(major + 1, 0, 0, ("0",))
    elif minor > 0 or patch is None:
        upperVersion = SemVerVersion(0, minor + 1, 0, ("0",))
    else:
        upperVersion = SemVerVersion(0, 0, patch + 1, ("0",))
    return [greaterOrEqual, SemVerComparator("<", upperVersion)]



def _tildeToComparators(partial: _Partial) -> list[SemVerComparator]:
    """
    ~M.m.p -> tilde expansion (npm):

    - If minor is given:
        >= M.m.p  and  < M.(m+1).0
    - Else (only Major specified, e.g. '~1')
        >= M.0.0  and  < (M+1).0.0
    """
    if partial.isWildcard:
        return []
    major, minor = partial.major, partial.minor
    assert major is not None
    greaterOrEqual = SemVerComparator(">=", partial.floor())
    if minor is not None:
        upperVersion = SemVerVersion(major, minor + 1, 0, ("0",))
    else:
        upperVersion = SemVerVersion(major + 1, 0, 0, ("0",))
    return [greaterOrEqual, SemVerComparator("<", upperVersion)]



def _operatorToComparators(op: str, partial: _Partial, rawRange: str) -> list[SemVerComparator]:
    canonOp = "==" if op in ("=", "==") else op
    if partial.isWildcard:
        # ">=*" and friends match everything; "<*" / ">*" match nothing
        if canonOp in ("<", ">"):
            return [SemVerComparator("<", SemVerVersion(0, 0, 0, ("0",)))]
        return []
    if partial.isComplete:
        return [SemVerComparator(canonOp, partial.floor())]
    if canonOp == "==":
        return _xRangeToComparators(partial)
    if canonOp == ">":
        return [SemVerComparator(">=", partial.nextCeiling())]
    if canonOp == "<=":
        return [SemVerComparator("<", partial.nextCeiling())]
    if canonOp in (">=", "<"):
        return [SemVerComparator(canonOp, partial.floor())]
    raise ValueError(f"Unsupported operator {op!r} in range {rawRange!r}")



def _xRangeToComparators(partial: _Partial) -> list[SemVerComparator]:
    if partial.isWildcard:
        return []
    if partial.isComplete:
        return [SemVerComparator("==", partial.floor())]
    return [
        SemVerComparator(">=", partial.floor()),
        SemVerComparator("<", partial.nextCeiling()),
    ]



def _parseHyphen(left: str, right: str, rawRange: str) -> SemVerRequirement:
    lower = _parsePartial(left, rawRange)
    upper = _parsePartial(right, rawRange)
    comparators: list[SemVerComparator] = []
    if not lower.isWildcard:
        comparators.append(SemVerComparator(">=", lower.floor()))
    if not upper.isWildcard:
        if upper.isComplete:
            comparators.append(SemVerComparator("<=", upper.floor()))
        else:
            comparators.append(SemVerComparator("<", upper.nextCeiling()))
    if not lower.isWildcard and upper.isComplete and upper.floor() < lower.floor():
        raise ValueError(f"Invalid hyphen range {rawRange!r}: upper < lower")
    return SemVerRequirement(comparators=tuple(comparators))



def _parseConjunction(part: str, rawRange: str) -> SemVerRequirement:
    part = part.strip()
    if not part:
        # An empty alternative only makes sense as the whole range ("" is rejected upstream)
        raise ValueError(f"Empty alternative in range {rawRange!r}")

    # Hyphen range: <left> - <right>, spaces around the hyphen are mandatory
    mtch = re.fullmatch(r"(?P<left>\S+)\s+-\s+(?P<right>\S+)", part)
    if mtch:
        return _parseHyphen(mtch.group("left"), mtch.group("right"), rawRange)

    # Glue operators to their operand: ">= 1.2.3" -> ">=1.2.3"
    part = re.sub(r"(<=|>=|==|<|>|=|\^|~)\s+", r"\1", part)

    comparators: list[SemVerComparator] = []
    for token in part.split():
        # Caret or tilde
        if token[0] in ("^", "~"):
            body = token[1:]
            if body.startswith(">") or body.startswith("="):
                # "~>" is an old alias of "~"
                body = body[1:]
            if not body:
                raise ValueError(f"Missing version after {token[0]!r} in range {rawRange!r}")
            partial = _parsePartial(body, rawRange)
            if token[0] == "^":
                comparators.extend(_caretToComparators(partial))
            else:
                comparators.extend(_tildeToComparators(partial))
            continue

        # Relational / equality operators
        op = next((candidate for candidate in _OPERATORS if token.startswith(candidate)), None)
        if op is not None:
            versionPart = token[len(op):]
            if not versionPart:
                raise ValueError(f"Missing version after operator {op!r} in range {rawRange!r}")
            comparators.extend(_operatorToComparators(op, _parsePartial(versionPart, rawRange), rawRange))
            continue

        # Otherwise plain or x-range version
        comparators.extend(_xRangeToComparators(_parsePartial(token, rawRange)))

    return SemVerRequirement(comparators=tuple(comparators))



def parseRange(rawRange: str) -> SemVerRange:
    """
    Parse a range expression into SemVerRange.

    Accepted forms:

        "*", "x"                -> any version
        "1.2.3", "=1.2.3"       -> == 1.2.3
        ">=1.2.0", "<2.0.0"     -> comparators
        ">=1.2.0 <2.0.0"        -> >=1.2.0 AND <2.0.0
        "^1.2.3"                -> >=1.2.3 AND <2.0.0 (with 0.x semantics)
        "~1.2.3"                -> >=1.2.3 AND <1.3.0
        "1.x", "1.2.*"          -> x-ranges
        "1.2.3 - 2.0.0"         -> >=1.2.3 AND <=2.0.0
        "1.2.7 || >=1.2.9"      -> either side

    Raises ValueError for anything else, including the empty string.
    """
    if not isinstance(rawRange, str):
        raise TypeError(f"Range must be a string, got {type(rawRange).__name__}")
    if not rawRange.strip():
        raise ValueError("Range cannot be empty or whitespace only")

    alternatives = tuple(_parseConjunction(part, rawRange) for part in rawRange.split("||"))
    return SemVerRange(alternatives=alternatives, raw=rawRange)



def _satisfiesRequirement(version: SemVerVersion, requirement: SemVerRequirement) -> bool:
    for comparator in requirement.comparators:
        if comparator.operator == "==":
            if not (version == comparator.version):
                return False
        elif comparator.operator == ">=":
            if not (version >= comparator.version):
                return False
        elif comparator.operator == "<=":
            if not (version <= comparator.version):
                return False
        elif comparator.operator == ">":
            if not (version > comparator.version):
                return False
        elif comparator.operator == "<":
            if not (version < comparator.version):
                return False
        else:
            raise ValueError(f"Unknown operator {comparator.operator!r}")
    return True



def versionSatisfiesRange(version: SemVerVersion, semverRange: SemVerRange | None) -> bool:
    """
    Checks if a version satisfies the given range.

    None => always returns True.
    """
    if semverRange is None:
        return True
    return any(_satisfiesRequirement(version, req) for req in semverRange.alternatives)



def isCommitStamp(raw: object) -> bool:
    return isinstance(raw, str) and COMMIT_STAMP_RE.fullmatch(raw) is not None



def isValidVersion(raw: object) -> bool:
    """
    True for an exact MAJOR.MINOR.PATCH version (optional prerelease/build) or a
    commit stamp. Stored versions are exact strings, so surrounding whitespace fails.
    """
    if isinstance(raw, str) and raw != raw.strip():
        return False
    return tryParseVersion(raw) is not None or isCommitStamp(raw)



def isValidRange(raw: object) -> bool:
    if not isinstance(raw, str):
        return False
    try:
        parseRange(raw)
    except ValueError:
        return False
    return True



def _sign(value: int) -> int:
    return (value > 0) - (value < 0)



def compareSemVer(left: str, right: str) -> int | None:
    """Standard SemVer precedence (-1, 0, 1), or None when either side is not strict SemVer."""
    versionLeft = tryParseVersion(left)
    versionRight = tryParseVersion(right)
    if versionLeft is None or versionRight is None:
        return None
    if versionLeft == versionRight:
        return 0
    return -1 if versionLeft < versionRight else 1



def _compareFallback(left: str, right: str) -> int:
    partsLeft = _FALLBACK_SPLIT_RE.split(normalizeVersion(left))
    partsRight = _FALLBACK_SPLIT_RE.split(normalizeVersion(right))
    for idx in range(max(len(partsLeft), len(partsRight))):
        partLeft = partsLeft[idx] if idx < len(partsLeft) else ""
        partRight = partsRight[idx] if idx < len(partsRight) else ""
        if partLeft.isdigit() and partRight.isdigit():
            cmp = _sign(int(partLeft) - int(partRight))
        else:
            cmp = (partLeft > partRight) - (partLeft < partRight)
        if cmp != 0:
            return cmp
    return 0



def compareVersions(left: str, right: str) -> int:
    """
    Order two version-like strings (tags, CalVer stamps, SemVer).

    Strict SemVer precedence is used when both sides parse; otherwise both are
    split on '.', '-' and '_' and compared token-wise (numbers as integers,
    everything else lexicographically).
    """
    strict = compareSemVer(left, right)
    if strict is not None:
        return strict
    return _compareFallback(left, right)
