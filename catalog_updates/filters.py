"""Package name filtering.

Include/exclude lists and package rules use a minimal glob dialect: ``*``
matches any run of characters, ``?`` a single character, and matching is
case-insensitive against the whole name.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from functools import lru_cache

from pydantic import BaseModel, Field

from .versions import TargetPolicy


class PackageRule(BaseModel):
    """Per-package overrides matched by name pattern.

    Attributes:
        patterns: Glob patterns; the rule applies if any of them matches.
        target: Target policy for matching packages (None keeps the default).
    """

    patterns: list[str]
    target: TargetPolicy | None = None


DEFAULT_PACKAGE_RULES: list[PackageRule] = [
    # Type definitions track their library closely
    PackageRule(patterns=["@types/*"], target="latest"),
    PackageRule(
        patterns=["eslint*", "prettier", "@typescript-eslint/*", "vitest", "jest"],
        target="minor",
    ),
    PackageRule(patterns=["typescript", "webpack*", "vite*", "rollup*"], target="minor"),
]


@lru_cache(maxsize=512)
def _pattern_regex(pattern: str) -> re.Pattern[str]:
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$", re.IGNORECASE)


def matches_pattern(package_name: str, pattern: str) -> bool:
    """Check a package name against one glob pattern.

    Examples:
        matches_pattern("@types/node", "@types/*") → True
        matches_pattern("eslint-plugin-x", "ESLINT*") → True
        matches_pattern("react-dom", "react") → False
    """
    return _pattern_regex(pattern).match(package_name) is not None


def matches_any(package_name: str, patterns: Iterable[str]) -> bool:
    return any(matches_pattern(package_name, p) for p in patterns)


def should_check_package(
    package_name: str,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
) -> bool:
    """Decide whether a catalog entry takes part in detection.

    Exclude patterns win over include patterns. When an include list is
    given, a package must match at least one of its patterns.
    """
    if exclude and matches_any(package_name, exclude):
        return False
    if include:
        return matches_any(package_name, include)
    return True


def find_rule(package_name: str, rules: Sequence[PackageRule]) -> PackageRule | None:
    """Return the first rule whose patterns match, or None."""
    for rule in rules:
        if matches_any(package_name, rule.patterns):
            return rule
    return None


class PackageFilter(BaseModel):
    """Include/exclude lists and rules bundled for the detector."""

    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    rules: list[PackageRule] = Field(default_factory=list)

    def allows(self, package_name: str) -> bool:
        return should_check_package(package_name, self.include, self.exclude)

    def target_for(self, package_name: str, default: TargetPolicy) -> TargetPolicy:
        rule = find_rule(package_name, self.rules)
        if rule is not None and rule.target:
            return rule.target
        return default
