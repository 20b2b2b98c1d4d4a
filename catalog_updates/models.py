"""Data models for catalog-updates.

Workspace entities (Workspace, Catalog, Package) are mutable Pydantic models
loaded fresh for each command. Everything the engine reports back
(outdated reports, plans, results, impact analyses) is a frozen model built
once and then only read.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .errors import CatalogNotFound, PackageNotFound
from .versions import UpdateType, VersionRange, parse_version, rewrite_range

DependencyType = Literal[
    "dependencies", "devDependencies", "peerDependencies", "optionalDependencies"
]
RiskLevel = Literal["low", "medium", "high"]
SkipReason = Literal["not-found", "network", "empty-version", "other"]
DEFAULT_CATALOG = "default"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── workspace entities ─────────────────────────────────────────────────────


class CatalogReference(BaseModel):
    """A package.json dependency that points at a catalog entry.

    Attributes:
        catalog_name: Catalog the dependency resolves through ("default" for
                      a bare ``catalog:`` reference).
        package_name: Name of the dependency.
        dependency_type: Which package.json section declared it.
    """

    catalog_name: str
    package_name: str
    dependency_type: DependencyType = "dependencies"


class Package(BaseModel):
    """A workspace member package.

    Attributes:
        name: Package name from package.json.
        path: Directory of the package, relative to the workspace root.
        catalog_references: Dependencies declared through a catalog.
    """

    name: str
    path: str
    catalog_references: list[CatalogReference] = Field(default_factory=list)

    def uses(self, catalog_name: str, package_name: str) -> bool:
        return any(
            ref.catalog_name == catalog_name and ref.package_name == package_name
            for ref in self.catalog_references
        )


class Catalog(BaseModel):
    """A named table of package name → version range.

    Ranges are stored as the raw strings found on disk so saving writes back
    exactly what was read, except for entries the executor changed.
    """

    name: str
    dependencies: dict[str, str] = Field(default_factory=dict)

    def get_range(self, package_name: str) -> VersionRange:
        """Return the parsed range for a package.

        Raises:
            PackageNotFound: If the package is not in this catalog.
            InvalidRange: If the stored value is not an npm range.
        """
        if package_name not in self.dependencies:
            raise PackageNotFound(package_name, self.name)
        return VersionRange(self.dependencies[package_name])

    def update_dependency(self, package_name: str, new_version: str) -> str:
        """Point a catalog entry at a new version, keeping its range style.

        Returns:
            The new range string stored in the catalog.

        Raises:
            PackageNotFound: If the package is not in this catalog.
            InvalidVersion: If new_version is not a semantic version.
        """
        if package_name not in self.dependencies:
            raise PackageNotFound(package_name, self.name)
        parse_version(new_version)
        new_range = rewrite_range(self.dependencies[package_name], new_version)
        self.dependencies[package_name] = new_range
        return new_range


class Workspace(BaseModel):
    """A pnpm workspace: its catalogs and member packages.

    Attributes:
        path: Absolute path of the workspace root.
        name: Directory name of the workspace root.
        catalogs: Catalogs keyed by name.
        packages: Member packages (including the root package when present).
    """

    path: str
    name: str
    catalogs: dict[str, Catalog] = Field(default_factory=dict)
    packages: list[Package] = Field(default_factory=list)

    def get_catalog(self, catalog_name: str) -> Catalog:
        try:
            return self.catalogs[catalog_name]
        except KeyError:
            raise CatalogNotFound(catalog_name) from None

    def packages_using(self, catalog_name: str, package_name: str) -> list[Package]:
        """Return members that reference package_name through catalog_name."""
        return [p for p in self.packages if p.uses(catalog_name, package_name)]

    def update_catalog_dependency(
        self, catalog_name: str, package_name: str, new_version: str
    ) -> str:
        """Update one catalog entry in memory. See Catalog.update_dependency."""
        return self.get_catalog(catalog_name).update_dependency(package_name, new_version)


# ── registry data ──────────────────────────────────────────────────────────


class PackageVersions(_Frozen):
    """Version metadata for one package as reported by the registry.

    Attributes:
        versions: Valid semantic versions, greatest first.
        latest_version: The ``latest`` dist-tag.
        tags: All dist-tags.
        time: Publish timestamps keyed by version (ISO 8601 strings).
    """

    name: str
    versions: list[str]
    latest_version: str
    tags: dict[str, str] = Field(default_factory=dict)
    time: dict[str, str] = Field(default_factory=dict)


class PackageInfo(PackageVersions):
    """PackageVersions plus descriptive metadata."""

    description: str | None = None
    homepage: str | None = None
    license: str | None = None
    repository: str | None = None


class SecurityVulnerability(_Frozen):
    id: str
    title: str = ""
    severity: str = "low"
    url: str = ""
    vulnerable_versions: str = ""


class SecurityReport(_Frozen):
    """Known advisories affecting one package version.

    An empty report means "no known vulnerabilities", which is also what a
    failed lookup returns.
    """

    package: str
    version: str
    vulnerabilities: list[SecurityVulnerability] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_vulnerabilities(self) -> bool:
        return bool(self.vulnerabilities)


class SkippedPackage(_Frozen):
    """A package left out of a report because its lookup failed."""

    name: str
    reason: SkipReason
    error: str = ""


# ── outdated detection ─────────────────────────────────────────────────────


class OutdatedDependencyInfo(_Frozen):
    """A catalog entry for which a newer version is available."""

    package_name: str
    current_version: str
    target_version: str
    update_type: UpdateType
    is_security_update: bool = False
    affected_packages: list[str] = Field(default_factory=list)


class CatalogUpdateInfo(_Frozen):
    catalog_name: str
    outdated_dependencies: list[OutdatedDependencyInfo] = Field(default_factory=list)
    total_packages: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def outdated_count(self) -> int:
        return len(self.outdated_dependencies)


class OutdatedReport(_Frozen):
    workspace_path: str
    workspace_name: str
    catalogs: list[CatalogUpdateInfo] = Field(default_factory=list)
    skipped: list[SkippedPackage] = Field(default_factory=list)
    security_check_failures: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_outdated(self) -> int:
        return sum(c.outdated_count for c in self.catalogs)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_updates(self) -> bool:
        return self.total_outdated > 0


# ── planning ───────────────────────────────────────────────────────────────


class PlannedUpdate(_Frozen):
    """One catalog entry transition proposed by the planner."""

    catalog_name: str
    package_name: str
    current_version: str
    new_version: str
    update_type: UpdateType
    reason: str
    is_security_update: bool = False
    affected_packages: list[str] = Field(default_factory=list)


class ConflictEntry(_Frozen):
    catalog_name: str
    current_version: str
    proposed_version: str


class VersionConflict(_Frozen):
    """The same package proposed at different versions in different catalogs.

    Not an error: the executor skips conflicted packages unless forced.
    """

    package_name: str
    catalogs: list[ConflictEntry]
    recommendation: str


class UpdatePlan(_Frozen):
    workspace_path: str
    workspace_name: str
    updates: list[PlannedUpdate] = Field(default_factory=list)
    conflicts: list[VersionConflict] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_updates(self) -> int:
        return len(self.updates)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def conflicted_packages(self) -> set[str]:
        return {c.package_name for c in self.conflicts}


# ── execution ──────────────────────────────────────────────────────────────


class UpdatedDependency(_Frozen):
    catalog_name: str
    package_name: str
    from_version: str
    to_version: str
    update_type: UpdateType


class SkippedDependency(_Frozen):
    catalog_name: str
    package_name: str
    current_version: str
    reason: str


class UpdateError(_Frozen):
    """An error recorded during execution.

    Non-fatal errors affect a single catalog entry; a fatal error (failed
    save) makes the whole result unsuccessful.
    """

    catalog_name: str = ""
    package_name: str = ""
    error: str
    fatal: bool = False


class UpdateResult(_Frozen):
    workspace_path: str
    workspace_name: str
    dry_run: bool = False
    updated_dependencies: list[UpdatedDependency] = Field(default_factory=list)
    skipped_dependencies: list[SkippedDependency] = Field(default_factory=list)
    errors: list[UpdateError] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return not any(e.fatal for e in self.errors)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_updated(self) -> int:
        return len(self.updated_dependencies)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_skipped(self) -> int:
        return len(self.skipped_dependencies)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_errors(self) -> int:
        return len(self.errors)


# ── impact analysis ────────────────────────────────────────────────────────


class PackageImpact(_Frozen):
    package_name: str
    package_path: str
    dependency_type: DependencyType
    is_breaking_change: bool
    compatibility_risk: RiskLevel


class SecurityImpact(_Frozen):
    has_vulnerabilities: bool = False
    fixed_vulnerabilities: int = 0
    new_vulnerabilities: int = 0
    severity_change: Literal["better", "worse", "same"] = "same"


class ImpactAnalysis(_Frozen):
    package_name: str
    catalog_name: str
    current_version: str
    proposed_version: str
    update_type: UpdateType
    affected_packages: list[PackageImpact] = Field(default_factory=list)
    risk_level: RiskLevel
    security_impact: SecurityImpact
    recommendations: list[str] = Field(default_factory=list)
