"""Tests for catalog_updates.versions."""

from __future__ import annotations

import itertools

import pytest

from catalog_updates.errors import InvalidRange, InvalidVersion
from catalog_updates.versions import (
    VersionRange,
    compare,
    difference_type,
    is_newer_than,
    is_prerelease,
    parse_version,
    rewrite_range,
    satisfies,
)

SAMPLE_VERSIONS = ["0.0.1", "0.1.0", "1.0.0-alpha", "1.0.0", "1.0.1", "1.2.0", "2.0.0"]


class TestParseVersion:
    def test_full_semver(self) -> None:
        v = parse_version("1.2.3")
        assert (v.major, v.minor, v.patch) == (1, 2, 3)

    def test_leading_v_and_equals(self) -> None:
        assert str(parse_version("v2.0.0")) == "2.0.0"
        assert str(parse_version("=1.0.0")) == "1.0.0"
        assert str(parse_version("  1.0.0 ")) == "1.0.0"

    def test_prerelease_and_build(self) -> None:
        v = parse_version("1.0.0-rc.1+build.5")
        assert v.prerelease == "rc.1"
        assert v.build == "build.5"

    def test_empty_string(self) -> None:
        with pytest.raises(InvalidVersion, match="cannot be empty"):
            parse_version("   ")

    def test_partial_version_rejected(self) -> None:
        with pytest.raises(InvalidVersion):
            parse_version("1.2")

    def test_invalid_version_is_value_error(self) -> None:
        """Callers catching ValueError also catch InvalidVersion."""
        with pytest.raises(ValueError):
            parse_version("not-a-version")


class TestCompare:
    def test_ordering(self) -> None:
        assert compare(parse_version("1.0.0"), parse_version("2.0.0")) == -1
        assert compare(parse_version("2.0.0"), parse_version("1.0.0")) == 1
        assert compare(parse_version("1.0.0"), parse_version("1.0.0")) == 0

    def test_prerelease_sorts_below_release(self) -> None:
        assert compare(parse_version("1.0.0-rc.1"), parse_version("1.0.0")) == -1

    def test_build_metadata_ignored(self) -> None:
        assert compare(parse_version("1.0.0+a"), parse_version("1.0.0+b")) == 0

    def test_transitive(self) -> None:
        """a < b and b < c implies a < c for every chain in the samples."""
        versions = [parse_version(v) for v in SAMPLE_VERSIONS]
        for a, b, c in itertools.permutations(versions, 3):
            if compare(a, b) < 0 and compare(b, c) < 0:
                assert compare(a, c) < 0

    def test_is_newer_than(self) -> None:
        assert is_newer_than(parse_version("1.0.1"), parse_version("1.0.0"))
        assert not is_newer_than(parse_version("1.0.0"), parse_version("1.0.0"))

    def test_is_prerelease(self) -> None:
        assert is_prerelease(parse_version("2.0.0-beta.1"))
        assert not is_prerelease(parse_version("2.0.0"))


class TestDifferenceType:
    def test_major(self) -> None:
        assert difference_type(parse_version("1.2.3"), parse_version("2.0.0")) == "major"

    def test_minor(self) -> None:
        assert difference_type(parse_version("1.2.3"), parse_version("1.3.0")) == "minor"

    def test_patch(self) -> None:
        assert difference_type(parse_version("1.2.3"), parse_version("1.2.4")) == "patch"

    def test_prerelease_only_is_none(self) -> None:
        assert difference_type(parse_version("1.0.0-rc.1"), parse_version("1.0.0")) == "none"

    def test_symmetric_and_reflexive(self) -> None:
        versions = [parse_version(v) for v in SAMPLE_VERSIONS]
        for a, b in itertools.product(versions, repeat=2):
            assert difference_type(a, b) == difference_type(b, a)
        for a in versions:
            assert difference_type(a, a) == "none"


class TestVersionRange:
    @pytest.mark.parametrize(
        ("raw", "inside", "outside"),
        [
            ("^1.2.3", ["1.2.3", "1.9.0"], ["1.2.2", "2.0.0"]),
            ("^0.2.3", ["0.2.3", "0.2.9"], ["0.3.0"]),
            ("^0.0.3", ["0.0.3"], ["0.0.4"]),
            ("~1.2.3", ["1.2.3", "1.2.9"], ["1.3.0"]),
            ("~1", ["1.0.0", "1.9.9"], ["2.0.0"]),
            ("1.x", ["1.0.0", "1.5.2"], ["2.0.0", "0.9.0"]),
            ("*", ["0.0.0", "99.0.0"], []),
            (">=1.0.0 <2.0.0", ["1.0.0", "1.99.0"], ["2.0.0"]),
            ("1.2.3 - 2.3", ["1.2.3", "2.3.9"], ["2.4.0", "1.2.2"]),
            ("^1.0.0 || ^3.0.0", ["1.1.0", "3.2.0"], ["2.0.0"]),
            (">= 1.0.0", ["1.0.0"], ["0.9.9"]),
        ],
    )
    def test_satisfies(self, raw: str, inside: list[str], outside: list[str]) -> None:
        version_range = VersionRange(raw)
        for v in inside:
            assert version_range.satisfies(parse_version(v)), f"{v} should satisfy {raw}"
        for v in outside:
            assert not version_range.satisfies(parse_version(v)), f"{v} should not satisfy {raw}"

    def test_prerelease_excluded_by_default(self) -> None:
        assert not VersionRange("^1.0.0").satisfies(parse_version("1.1.0-beta.1"))

    def test_prerelease_on_same_tuple_allowed(self) -> None:
        assert VersionRange(">=1.1.0-alpha").satisfies(parse_version("1.1.0-beta"))
        assert not VersionRange(">=1.1.0-alpha").satisfies(parse_version("1.2.0-beta"))

    def test_include_prerelease(self) -> None:
        assert satisfies("1.1.0-beta.1", "^1.0.0", include_prerelease=True)

    @pytest.mark.parametrize(
        "raw", ["workspace:*", "catalog:", "npm:react@18", "file:../lib", "latest", "1.2.3.4"]
    )
    def test_rejects_non_ranges(self, raw: str) -> None:
        with pytest.raises(InvalidRange):
            VersionRange(raw)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("^17.0.0", "17.0.0"),
            ("~4.17.20", "4.17.20"),
            (">1.2.3", "1.2.4"),
            ("*", "0.0.0"),
            ("<1.0.0", "0.0.0"),
            ("^1.2", "1.2.0"),
            ("1.x || >=2.5.0", "1.0.0"),
            ("2.0.0 - 3.0.0", "2.0.0"),
            ("=3.1.4", "3.1.4"),
        ],
    )
    def test_min_version(self, raw: str, expected: str) -> None:
        assert str(VersionRange(raw).min_version) == expected

    def test_min_version_unsatisfiable(self) -> None:
        with pytest.raises(InvalidRange):
            VersionRange(">=2.0.0 <1.0.0").min_version

    def test_equality_uses_raw_string(self) -> None:
        assert VersionRange("^1.0.0") == VersionRange("^1.0.0")
        assert VersionRange("^1.0.0") != VersionRange("~1.0.0")
        assert len({VersionRange("^1.0.0"), VersionRange("^1.0.0")}) == 1


class TestRewriteRange:
    @pytest.mark.parametrize(
        ("old", "new", "expected"),
        [
            ("^17.0.0", "18.2.0", "^18.2.0"),
            ("~1.2.3", "1.2.9", "~1.2.9"),
            ("4.17.21", "4.18.0", "4.18.0"),
            (">=1.0.0", "2.0.0", ">=2.0.0"),
            ("=1.0.0", "1.0.1", "=1.0.1"),
            ("1.x", "2.0.0", "^2.0.0"),
            ("^1.2", "2.0.0", "^2.0.0"),
            (">=1 <2", "2.1.0", "^2.1.0"),
            ("^1.0.0 || ^2.0.0", "3.0.0", "^3.0.0"),
        ],
    )
    def test_rewrite(self, old: str, new: str, expected: str) -> None:
        assert rewrite_range(old, new) == expected
