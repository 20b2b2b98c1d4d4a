"""Version parsing, comparison, and npm range handling.

Versions are ``semver.Version`` objects, which already give SemVer 2.0.0
precedence (prereleases sort below their release, build metadata is ignored).
On top of that this module implements the npm range dialect used by catalog
entries (``^1.2.3``, ``~1.2``, ``>=1 <2``, ``1.x || 2.x``, ``1.0.0 - 2.0.0``)
and npm's ``minVersion`` so a range can be compared against registry versions.
"""

from __future__ import annotations

import re
from typing import Literal, NamedTuple, get_args

import semver

from .errors import InvalidRange, InvalidVersion

UpdateType = Literal["major", "minor", "patch", "none"]
TargetPolicy = Literal["latest", "greatest", "newest", "minor", "patch"]
TARGET_POLICIES: tuple[str, ...] = get_args(TargetPolicy)

# A partial version inside a range: each part may be a number, a wildcard, or missing
_PARTIAL = (
    r"v?(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?"
)
_COMPARATOR_RE = re.compile(rf"^(<=|>=|<|>|=|\^|~>|~)?{_PARTIAL}$")
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|<|>|=|\^|~>|~)\s+")
_SIMPLE_RANGE_RE = re.compile(
    r"^\s*(\^|~|>=|=)?\s*v?\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?\s*$"
)


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Accepts an optional leading "v" or "=" (as npm does) and surrounding
    whitespace; the rest must be a complete SemVer 2.0.0 version.

    Raises:
        InvalidVersion: If the string is empty or not a semantic version.

    Examples:
        "1.2.3" → 1.2.3
        "v2.0.0-rc.1" → 2.0.0-rc.1
    """
    if not isinstance(version_str, str):
        raise InvalidVersion(str(version_str), "expected a string")
    text = version_str.strip()
    if not text:
        raise InvalidVersion(version_str)
    text = text.lstrip("=").strip().lstrip("vV")
    try:
        return semver.Version.parse(text)
    except ValueError as exc:
        raise InvalidVersion(version_str) from exc


def compare(a: semver.Version, b: semver.Version) -> int:
    """Compare two versions by SemVer precedence.

    Returns:
        -1 if a < b, 0 if they are equal, 1 if a > b.
    """
    return a.compare(b)


def is_newer_than(candidate: semver.Version, other: semver.Version) -> bool:
    """Return True if candidate is strictly greater than other."""
    return compare(candidate, other) > 0


def is_prerelease(version: semver.Version) -> bool:
    """Return True if the version carries prerelease identifiers."""
    return version.prerelease is not None


def difference_type(from_version: semver.Version, to_version: semver.Version) -> UpdateType:
    """Classify which version component differs between two versions.

    The highest differing component wins. Prerelease and build metadata are
    ignored, so "1.0.0-rc.1" → "1.0.0" is "none".

    Examples:
        1.2.3 → 2.0.0 is "major"
        1.2.3 → 1.3.0 is "minor"
        1.2.3 → 1.2.4 is "patch"
    """
    if from_version.major != to_version.major:
        return "major"
    if from_version.minor != to_version.minor:
        return "minor"
    if from_version.patch != to_version.patch:
        return "patch"
    return "none"


class Comparator(NamedTuple):
    """A single primitive constraint such as ">=1.2.3"."""

    operator: str
    version: semver.Version

    def test(self, version: semver.Version) -> bool:
        cmp = compare(version, self.version)
        if self.operator == ">=":
            return cmp >= 0
        if self.operator == ">":
            return cmp > 0
        if self.operator == "<=":
            return cmp <= 0
        if self.operator == "<":
            return cmp < 0
        return cmp == 0

    def __str__(self) -> str:
        op = "" if self.operator == "=" else self.operator
        return f"{op}{self.version}"


# A comparator that nothing satisfies, used for "<0" and similar
_NOTHING = Comparator("<", semver.Version(0, 0, 0, prerelease="0"))


def _v(major: int, minor: int = 0, patch: int = 0, prerelease: str | None = None) -> semver.Version:
    return semver.Version(major, minor, patch, prerelease=prerelease)


def _is_wild(part: str | None) -> bool:
    return part is None or part in ("x", "X", "*")


def _expand_comparator(token: str, raw: str) -> list[Comparator]:
    """Expand one range token (caret, tilde, x-range, primitive) into comparators."""
    match = _COMPARATOR_RE.match(token)
    if not match:
        raise InvalidRange(raw, f"cannot parse '{token}'")
    op, major_s, minor_s, patch_s, pre = match.groups()
    op = op or ""

    # Wildcards are contagious: "1.x.3" behaves like "1.x"
    if _is_wild(major_s):
        major = minor = patch = None
    else:
        major = int(major_s)
        if _is_wild(minor_s):
            minor = patch = None
        else:
            minor = int(minor_s)
            patch = None if _is_wild(patch_s) else int(patch_s)
    if patch is None:
        pre = None

    if op in ("^", "~", "~>"):
        if major is None:
            return []
        if minor is None:
            return [Comparator(">=", _v(major)), Comparator("<", _v(major + 1, prerelease="0"))]
        if op == "^":
            if patch is None:
                if major != 0:
                    upper = _v(major + 1, prerelease="0")
                else:
                    upper = _v(0, minor + 1, prerelease="0")
                return [Comparator(">=", _v(major, minor)), Comparator("<", upper)]
            if major != 0:
                upper = _v(major + 1, prerelease="0")
            elif minor != 0:
                upper = _v(0, minor + 1, prerelease="0")
            else:
                upper = _v(0, 0, patch + 1, prerelease="0")
            return [Comparator(">=", _v(major, minor, patch, pre)), Comparator("<", upper)]
        lower = _v(major, minor, patch or 0, pre)
        return [Comparator(">=", lower), Comparator("<", _v(major, minor + 1, prerelease="0"))]

    if op in ("", "="):
        if major is None:
            return []
        if minor is None:
            return [Comparator(">=", _v(major)), Comparator("<", _v(major + 1, prerelease="0"))]
        if patch is None:
            return [
                Comparator(">=", _v(major, minor)),
                Comparator("<", _v(major, minor + 1, prerelease="0")),
            ]
        return [Comparator("=", _v(major, minor, patch, pre))]

    # Primitive operators with a partial version
    if major is None:
        return [_NOTHING] if op in ("<", ">") else []
    if minor is None or patch is None:
        if op == ">":
            bumped = _v(major + 1) if minor is None else _v(major, minor + 1)
            return [Comparator(">=", bumped)]
        if op == "<=":
            bumped = (
                _v(major + 1, prerelease="0")
                if minor is None
                else _v(major, minor + 1, prerelease="0")
            )
            return [Comparator("<", bumped)]
        if op == "<":
            return [Comparator("<", _v(major, minor or 0, prerelease="0"))]
        return [Comparator(">=", _v(major, minor or 0))]
    return [Comparator(op, _v(major, minor, patch, pre))]


def _expand_hyphen(lower: str, upper: str, raw: str) -> list[Comparator]:
    comparators: list[Comparator] = []
    for token in (lower, upper):
        if not _COMPARATOR_RE.match(token) or token[0] in "<>=^~":
            raise InvalidRange(raw, f"bad hyphen bound '{token}'")
    low = _expand_comparator(lower, raw)
    if low:
        # ">=" bound of an x-range, or the exact version itself
        comparators.append(Comparator(">=", low[0].version))
    high_parts = _COMPARATOR_RE.match(upper).groups()
    _, major_s, minor_s, patch_s, pre = high_parts
    if _is_wild(major_s):
        return comparators
    if _is_wild(minor_s):
        comparators.append(Comparator("<", _v(int(major_s) + 1, prerelease="0")))
    elif _is_wild(patch_s):
        comparators.append(Comparator("<", _v(int(major_s), int(minor_s) + 1, prerelease="0")))
    else:
        comparators.append(
            Comparator("<=", _v(int(major_s), int(minor_s), int(patch_s), pre))
        )
    return comparators


def _parse_comparator_set(part: str, raw: str) -> list[Comparator]:
    text = part.strip()
    if not text:
        return []
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        return _expand_hyphen(hyphen.group(1), hyphen.group(2), raw)
    text = _OPERATOR_SPACE_RE.sub(r"\1", text)
    comparators: list[Comparator] = []
    for token in text.split():
        comparators.extend(_expand_comparator(token, raw))
    return comparators


class VersionRange:
    """An npm version range as declared in a catalog.

    Keeps the raw constraint string (what gets written back to disk) along
    with its parsed comparator sets. Sets are ORed, comparators inside a set
    are ANDed.

    Raises:
        InvalidRange: If the string is not an npm range. Protocol specifiers
            such as "workspace:*" or "npm:foo@1" and dist-tags are rejected.
    """

    def __init__(self, raw: str):
        if not isinstance(raw, str):
            raise InvalidRange(str(raw), "expected a string")
        self.raw = raw
        stripped = raw.strip()
        if ":" in stripped or "/" in stripped:
            raise InvalidRange(raw, "protocol or path specifiers are not ranges")
        self.sets: list[list[Comparator]] = [
            _parse_comparator_set(part, raw) for part in stripped.split("||")
        ]
        self._min_version: semver.Version | None = None

    def __str__(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"VersionRange({self.raw!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionRange):
            return NotImplemented
        return self.raw == other.raw

    def __hash__(self) -> int:
        return hash(self.raw)

    def satisfies(self, version: semver.Version, include_prerelease: bool = False) -> bool:
        """Return True if version falls inside this range.

        A prerelease only matches a comparator set that itself names a
        prerelease on the same major.minor.patch, unless include_prerelease.
        """
        return any(self._test_set(s, version, include_prerelease) for s in self.sets)

    @staticmethod
    def _test_set(
        comparators: list[Comparator], version: semver.Version, include_prerelease: bool
    ) -> bool:
        if not all(c.test(version) for c in comparators):
            return False
        if version.prerelease is None or include_prerelease:
            return True
        base = (version.major, version.minor, version.patch)
        return any(
            c.version.prerelease is not None
            and (c.version.major, c.version.minor, c.version.patch) == base
            for c in comparators
        )

    @property
    def min_version(self) -> semver.Version:
        """The lowest version that satisfies this range (npm's minVersion).

        Raises:
            InvalidRange: If no version can satisfy the range.
        """
        if self._min_version is None:
            self._min_version = self._compute_min_version()
        return self._min_version

    def _compute_min_version(self) -> semver.Version:
        for floor in (_v(0), _v(0, prerelease="0")):
            if self.satisfies(floor):
                return floor

        best: semver.Version | None = None
        for comparators in self.sets:
            set_min: semver.Version | None = None
            for comparator in comparators:
                candidate = comparator.version
                if comparator.operator == ">":
                    if candidate.prerelease is not None:
                        candidate = candidate.replace(prerelease=f"{candidate.prerelease}.0")
                    else:
                        candidate = candidate.bump_patch()
                elif comparator.operator not in (">=", "="):
                    continue
                if set_min is None or compare(candidate, set_min) > 0:
                    set_min = candidate
            if set_min is not None and (best is None or compare(best, set_min) > 0):
                best = set_min

        if best is None or not self.satisfies(best):
            raise InvalidRange(self.raw, "no version satisfies this range")
        return best


def satisfies(
    version: semver.Version | str,
    version_range: VersionRange | str,
    include_prerelease: bool = False,
) -> bool:
    """Check a version against a range, parsing either side if given as a string.

    Raises:
        InvalidVersion: If version is a malformed string.
        InvalidRange: If version_range is a malformed string.
    """
    if isinstance(version, str):
        version = parse_version(version)
    if isinstance(version_range, str):
        version_range = VersionRange(version_range)
    return version_range.satisfies(version, include_prerelease=include_prerelease)


def rewrite_range(old_range: str, new_version: str) -> str:
    """Build the catalog value that replaces old_range when updating.

    A full version with an optional ^, ~, >= or = prefix keeps its prefix.
    Anything else ("1.x", "^1.2", ">=1 <2", "a || b") is replaced with a
    caret range on the new version.

    Examples:
        rewrite_range("^17.0.0", "18.2.0") → "^18.2.0"
        rewrite_range("~1.2.3", "1.2.9") → "~1.2.9"
        rewrite_range("4.17.21", "4.18.0") → "4.18.0"
        rewrite_range(">=1 <2", "2.1.0") → "^2.1.0"
    """
    match = _SIMPLE_RANGE_RE.match(old_range)
    if not match:
        return f"^{new_version}"
    return f"{match.group(1) or ''}{new_version}"
