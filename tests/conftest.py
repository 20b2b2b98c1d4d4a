"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import semver

from catalog_updates.errors import PersistenceFailed
from catalog_updates.models import (
    Catalog,
    CatalogReference,
    Package,
    SecurityReport,
    SecurityVulnerability,
    Workspace,
)
from catalog_updates.tracking import SkipTracker
from catalog_updates.versions import TargetPolicy, VersionRange, parse_version


class StubRegistry:
    """In-memory registry gateway.

    targets maps a package name to a version, or to a dict of policy → version.
    vulnerabilities maps (package, version) to advisory ids.
    failures maps a package name to the exception resolve_target raises.
    security_failures names packages whose security lookup fails open: the
    failure is counted on tracker and an empty report comes back.
    """

    def __init__(
        self,
        targets: dict[str, Any] | None = None,
        vulnerabilities: dict[tuple[str, str], list[str]] | None = None,
        failures: dict[str, Exception] | None = None,
        security_failures: set[str] | None = None,
        tracker: SkipTracker | None = None,
    ) -> None:
        self.targets = targets or {}
        self.vulnerabilities = vulnerabilities or {}
        self.failures = failures or {}
        self.security_failures = security_failures or set()
        self.tracker = tracker
        self.resolve_calls: list[tuple[str, str]] = []
        self.security_calls: list[tuple[str, str]] = []
        self.closed = False

    def resolve_target(
        self,
        package_name: str,
        policy: TargetPolicy,
        current_range: VersionRange | None = None,
        include_prerelease: bool = False,
    ) -> semver.Version:
        self.resolve_calls.append((package_name, policy))
        if package_name in self.failures:
            raise self.failures[package_name]
        target = self.targets[package_name]
        if isinstance(target, dict):
            target = target[policy]
        return parse_version(target)

    def security_report(self, package_name: str, version: str) -> SecurityReport:
        self.security_calls.append((package_name, version))
        if package_name in self.security_failures:
            if self.tracker is not None:
                self.tracker.track_security_failure()
            return SecurityReport(package=package_name, version=version)
        ids = self.vulnerabilities.get((package_name, version), [])
        return SecurityReport(
            package=package_name,
            version=version,
            vulnerabilities=[SecurityVulnerability(id=i, severity="high") for i in ids],
        )

    def close(self) -> None:
        self.closed = True


class InMemoryRepository:
    """Workspace repository that hands out copies of one workspace."""

    def __init__(self, workspace: Workspace | None, fail_save: bool = False) -> None:
        self.workspace = workspace
        self.fail_save = fail_save
        self.saved: list[Workspace] = []
        self.backups: list[Workspace] = []

    def find_by_path(self, path: str | Path) -> Workspace | None:
        if self.workspace is None or str(path) != self.workspace.path:
            return None
        return self.workspace.model_copy(deep=True)

    def save(self, workspace: Workspace) -> None:
        if self.fail_save:
            raise PersistenceFailed(workspace.path, "disk full")
        self.saved.append(workspace)

    def create_backup(self, workspace: Workspace) -> Path:
        self.backups.append(workspace)
        return Path(workspace.path) / "pnpm-workspace.yaml.bak"


def make_package(name: str, *refs: tuple[str, str], dependency_type: str = "dependencies") -> Package:
    """Build a package referencing (catalog, package) pairs."""
    return Package(
        name=name,
        path=f"packages/{name}",
        catalog_references=[
            CatalogReference(
                catalog_name=catalog, package_name=package, dependency_type=dependency_type
            )
            for catalog, package in refs
        ],
    )


@pytest.fixture
def react_workspace() -> Workspace:
    """Default catalog with react ^17.0.0 used by three packages."""
    return Workspace(
        path="/repo",
        name="repo",
        catalogs={
            "default": Catalog(
                name="default",
                dependencies={"react": "^17.0.0", "lodash": "^4.17.20"},
            ),
        },
        packages=[
            make_package("app-a", ("default", "react"), ("default", "lodash")),
            make_package("app-b", ("default", "react")),
            make_package("app-c", ("default", "react"), dependency_type="devDependencies"),
        ],
    )


@pytest.fixture
def two_catalog_workspace() -> Workspace:
    """Catalogs "default" and "legacy" both declaring x at 1.0.0."""
    return Workspace(
        path="/repo",
        name="repo",
        catalogs={
            "default": Catalog(name="default", dependencies={"x": "^1.0.0"}),
            "legacy": Catalog(name="legacy", dependencies={"x": "^1.0.0"}),
        },
        packages=[
            make_package("web", ("default", "x")),
            make_package("old-web", ("legacy", "x")),
        ],
    )


def write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))


@pytest.fixture
def pnpm_workspace(tmp_path: Path) -> Path:
    """A pnpm workspace on disk with two catalogs and three packages."""
    (tmp_path / "pnpm-workspace.yaml").write_text(
        """\
packages:
  - "packages/*"
  - "!packages/ignored"
catalog:
  react: ^17.0.0
  lodash: ~4.17.20
catalogs:
  legacy:
    react: ^16.14.0
onlyBuiltDependencies:
  - esbuild
"""
    )
    write_json(tmp_path / "package.json", {"name": "root", "devDependencies": {"lodash": "catalog:"}})
    write_json(
        tmp_path / "packages" / "web" / "package.json",
        {
            "name": "@acme/web",
            "dependencies": {"react": "catalog:", "left-pad": "^1.3.0"},
            "devDependencies": {"lodash": "catalog:default"},
        },
    )
    write_json(
        tmp_path / "packages" / "old-web" / "package.json",
        {"name": "@acme/old-web", "peerDependencies": {"react": "catalog:legacy"}},
    )
    write_json(
        tmp_path / "packages" / "ignored" / "package.json",
        {"name": "@acme/ignored", "dependencies": {"react": "catalog:"}},
    )
    (tmp_path / "packages" / "no-manifest").mkdir()
    return tmp_path
