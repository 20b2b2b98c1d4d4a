"""Tests for catalog_updates.filters."""

from __future__ import annotations

from catalog_updates.filters import (
    DEFAULT_PACKAGE_RULES,
    PackageFilter,
    PackageRule,
    find_rule,
    matches_pattern,
    should_check_package,
)


class TestMatchesPattern:
    def test_star_matches_any_run(self) -> None:
        assert matches_pattern("@types/node", "@types/*")
        assert matches_pattern("eslint-plugin-react", "eslint*")

    def test_question_mark_matches_one_char(self) -> None:
        assert matches_pattern("vue2", "vue?")
        assert not matches_pattern("vue", "vue?")

    def test_case_insensitive(self) -> None:
        assert matches_pattern("React", "react")

    def test_full_match_only(self) -> None:
        assert not matches_pattern("react-dom", "react")
        assert not matches_pattern("preact", "react")

    def test_other_characters_are_literal(self) -> None:
        """A dot in a pattern only matches a dot."""
        assert matches_pattern("socket.io", "socket.io")
        assert not matches_pattern("socketxio", "socket.io")


class TestShouldCheckPackage:
    def test_no_filters(self) -> None:
        assert should_check_package("react")

    def test_exclude_wins_over_include(self) -> None:
        assert not should_check_package("react", include=["react*"], exclude=["react"])

    def test_include_requires_match(self) -> None:
        assert should_check_package("@types/node", include=["@types/*"])
        assert not should_check_package("lodash", include=["@types/*"])

    def test_exclude_only(self) -> None:
        assert not should_check_package("lodash", exclude=["lodash"])
        assert should_check_package("react", exclude=["lodash"])


class TestPackageRules:
    def test_first_match_wins(self) -> None:
        rules = [
            PackageRule(patterns=["vite*"], target="patch"),
            PackageRule(patterns=["vite"], target="latest"),
        ]
        rule = find_rule("vite", rules)
        assert rule is not None
        assert rule.target == "patch"

    def test_no_match(self) -> None:
        assert find_rule("react", DEFAULT_PACKAGE_RULES) is None

    def test_default_rules(self) -> None:
        package_filter = PackageFilter(rules=DEFAULT_PACKAGE_RULES)
        assert package_filter.target_for("@types/react", "greatest") == "latest"
        assert package_filter.target_for("eslint", "latest") == "minor"
        assert package_filter.target_for("typescript", "latest") == "minor"
        assert package_filter.target_for("react", "latest") == "latest"

    def test_rule_without_target_keeps_default(self) -> None:
        package_filter = PackageFilter(rules=[PackageRule(patterns=["react"])])
        assert package_filter.target_for("react", "newest") == "newest"

    def test_unknown_keys_ignored(self) -> None:
        rule = PackageRule.model_validate({"patterns": ["@types/*"], "autoUpdate": True})
        assert rule.model_dump() == {"patterns": ["@types/*"], "target": None}

    def test_filter_allows(self) -> None:
        package_filter = PackageFilter(include=["@acme/*"], exclude=["@acme/internal"])
        assert package_filter.allows("@acme/ui")
        assert not package_filter.allows("@acme/internal")
        assert not package_filter.allows("react")
