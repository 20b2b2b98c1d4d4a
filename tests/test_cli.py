"""Tests for the catalog-updates command line."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
import semver
import yaml
from click.testing import CliRunner
from conftest import StubRegistry

from catalog_updates.cli import cli

TARGETS = {"react": "18.2.0", "lodash": "4.17.21"}


class SameMajorRegistry(StubRegistry):
    """Answers react with x.99.0 for the major of the current range."""

    def resolve_target(self, package_name, policy, current_range=None, include_prerelease=False):
        if package_name == "react" and current_range is not None:
            self.resolve_calls.append((package_name, policy))
            return semver.Version(current_range.min_version.major, 99, 0)
        return super().resolve_target(package_name, policy, current_range, include_prerelease)


@pytest.fixture
def registry() -> Iterator[StubRegistry]:
    stub = StubRegistry(targets=dict(TARGETS))
    with patch("catalog_updates.cli.build_registry", return_value=stub):
        yield stub


def _catalogs(root: Path) -> dict:
    return yaml.safe_load((root / "pnpm-workspace.yaml").read_text())


class TestCheck:
    def test_reports_outdated(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        result = CliRunner().invoke(cli, ["check", "-w", str(pnpm_workspace)])

        assert result.exit_code == 1
        assert "catalog default (2 outdated)" in result.output
        assert "react 17.0.0 → 18.2.0 (major)" in result.output
        assert "lodash 4.17.20 → 4.17.21 (patch)" in result.output
        assert registry.closed

    def test_up_to_date(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        registry.targets.update(react="17.0.0", lodash="4.17.20")

        result = CliRunner().invoke(
            cli, ["check", "-w", str(pnpm_workspace), "--catalog", "default"]
        )

        assert result.exit_code == 0
        assert "All catalog dependencies are up to date" in result.output

    def test_json(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        result = CliRunner().invoke(
            cli, ["check", "-w", str(pnpm_workspace), "--catalog", "legacy", "--json"]
        )

        data = json.loads(result.stdout)
        assert [c["catalog_name"] for c in data["catalogs"]] == ["legacy"]
        assert data["catalogs"][0]["outdated_dependencies"][0]["target_version"] == "18.2.0"

    def test_exclude(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        result = CliRunner().invoke(
            cli, ["check", "-w", str(pnpm_workspace), "--catalog", "default", "--exclude", "react"]
        )

        assert "react" not in result.output
        assert "lodash" in result.output
        assert "react" not in [name for name, _ in registry.resolve_calls]

    def test_target_flag(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        CliRunner().invoke(cli, ["check", "-w", str(pnpm_workspace), "--target", "minor"])

        assert {policy for _, policy in registry.resolve_calls} == {"minor"}

    def test_reports_failed_security_checks(self, pnpm_workspace: Path) -> None:
        def build(config, workspace_path, tracker):
            return StubRegistry(
                targets=dict(TARGETS), security_failures={"react", "lodash"}, tracker=tracker
            )

        with patch("catalog_updates.cli.build_registry", side_effect=build):
            result = CliRunner().invoke(
                cli, ["check", "-w", str(pnpm_workspace), "--catalog", "default"]
            )

        assert result.exit_code == 1
        assert "Security check failed for 2 package(s)" in result.output

    def test_missing_workspace(self, tmp_path: Path, registry: StubRegistry) -> None:
        result = CliRunner().invoke(cli, ["check", "-w", str(tmp_path)])

        assert result.exit_code == 2
        assert "Error: No pnpm workspace found" in result.output
        assert registry.closed

    def test_unknown_catalog(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        result = CliRunner().invoke(
            cli, ["check", "-w", str(pnpm_workspace), "--catalog", "nope"]
        )

        assert result.exit_code == 2
        assert 'Catalog "nope" not found' in result.output


class TestUpdate:
    def test_writes_catalogs(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        result = CliRunner().invoke(cli, ["update", "-w", str(pnpm_workspace)])

        assert result.exit_code == 0, result.output
        assert "Updated default/react 17.0.0 → 18.2.0" in result.output
        doc = _catalogs(pnpm_workspace)
        assert doc["catalog"] == {"react": "^18.2.0", "lodash": "~4.17.21"}
        assert doc["catalogs"]["legacy"] == {"react": "^18.2.0"}
        assert not (pnpm_workspace / "pnpm-workspace.yaml.bak").exists()

    def test_dry_run_leaves_file_alone(
        self, pnpm_workspace: Path, registry: StubRegistry
    ) -> None:
        before = (pnpm_workspace / "pnpm-workspace.yaml").read_text()

        result = CliRunner().invoke(cli, ["update", "-w", str(pnpm_workspace), "--dry-run"])

        assert result.exit_code == 0
        assert "Would update default/react" in result.output
        assert (pnpm_workspace / "pnpm-workspace.yaml").read_text() == before

    def test_create_backup(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        before = (pnpm_workspace / "pnpm-workspace.yaml").read_text()

        CliRunner().invoke(cli, ["update", "-w", str(pnpm_workspace), "--create-backup"])

        assert (pnpm_workspace / "pnpm-workspace.yaml.bak").read_text() == before

    def test_conflict_skipped_unless_forced(self, pnpm_workspace: Path) -> None:
        stub = SameMajorRegistry(targets={"lodash": "4.17.20"})
        args = ["update", "-w", str(pnpm_workspace), "--json"]

        with patch("catalog_updates.cli.build_registry", return_value=stub):
            skipped = json.loads(CliRunner().invoke(cli, args).stdout)
            forced = json.loads(CliRunner().invoke(cli, [*args, "--force"]).stdout)

        assert skipped["updated_dependencies"] == []
        assert len(skipped["skipped_dependencies"]) == 2
        assert len(forced["updated_dependencies"]) == 2
        doc = _catalogs(pnpm_workspace)
        assert doc["catalog"]["react"] == "^17.99.0"
        assert doc["catalogs"]["legacy"]["react"] == "^16.99.0"


class TestAnalyze:
    def test_text(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        result = CliRunner().invoke(
            cli, ["analyze", "default", "react", "18.2.0", "-w", str(pnpm_workspace)]
        )

        assert result.exit_code == 0, result.output
        assert "default/react: ^17.0.0 → 18.2.0 (major)" in result.output
        assert "Risk: medium" in result.output
        assert "Affected packages: 1" in result.output
        assert "@acme/web (packages/web, dependencies)" in result.output

    def test_missing_package(self, pnpm_workspace: Path, registry: StubRegistry) -> None:
        result = CliRunner().invoke(
            cli, ["analyze", "default", "vue", "3.0.0", "-w", str(pnpm_workspace)]
        )

        assert result.exit_code == 2
        assert 'Package "vue" not found in catalog "default"' in result.output
