"""Outdated dependency detection.

For every catalog entry that passes the include/exclude filters, ask the
registry for a target version and decide whether it is an update. Registry
lookups run on a bounded thread pool; one package failing only puts that
package on the skipped list.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import NamedTuple

import structlog
from pydantic import BaseModel, Field

from .filters import PackageFilter, PackageRule
from .models import (
    Catalog,
    CatalogUpdateInfo,
    OutdatedDependencyInfo,
    OutdatedReport,
    SkippedPackage,
    Workspace,
)
from .registry import RegistryGateway
from .tracking import SkipTracker
from .versions import (
    TargetPolicy,
    VersionRange,
    difference_type,
    is_newer_than,
    is_prerelease,
)

log = structlog.get_logger("catalog_updates.detector")

DEFAULT_CONCURRENCY = 8
DEFAULT_TARGET: TargetPolicy = "latest"


class CheckOptions(BaseModel):
    """Options shared by check, plan and update.

    Attributes:
        workspace_path: Workspace root; the current directory when None.
        catalog_name: Only check this catalog when set.
        target: Target policy for every package. When None, package rules
                decide per package and default_target is the fallback.
        default_target: Policy for packages no rule matches.
        include_prerelease: Allow prerelease targets.
        include: Only check packages matching one of these patterns.
        exclude: Never check packages matching one of these patterns.
        package_rules: Per-package overrides (first match wins).
    """

    workspace_path: str | None = None
    catalog_name: str | None = None
    target: TargetPolicy | None = None
    default_target: TargetPolicy = DEFAULT_TARGET
    include_prerelease: bool = False
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    package_rules: list[PackageRule] = Field(default_factory=list)

    def package_filter(self) -> PackageFilter:
        return PackageFilter(include=self.include, exclude=self.exclude, rules=self.package_rules)

    def target_for(self, package_name: str) -> TargetPolicy:
        if self.target is not None:
            return self.target
        return self.package_filter().target_for(package_name, self.default_target)


class _EntryResult(NamedTuple):
    catalog_name: str
    info: OutdatedDependencyInfo | None
    skipped: SkippedPackage | None


def check_package_update(
    registry: RegistryGateway,
    package_name: str,
    current_range: VersionRange,
    target: TargetPolicy,
    include_prerelease: bool = False,
) -> OutdatedDependencyInfo | None:
    """Check one catalog entry against the registry.

    Returns None when there is nothing to update: the target is a prerelease
    that was not asked for, or it is not newer than the lowest version the
    current range allows. affected_packages is left empty for the caller.

    Raises:
        RegistryLookupFailed: If the registry cannot resolve the package.
        InvalidRange: If current_range has no minimum version.
        InvalidVersion: If the registry returns a malformed version.
    """
    target_version = registry.resolve_target(
        package_name, target, current_range, include_prerelease
    )
    if is_prerelease(target_version) and not include_prerelease:
        return None

    current = current_range.min_version
    if not is_newer_than(target_version, current):
        return None

    report = registry.security_report(package_name, str(current))
    return OutdatedDependencyInfo(
        package_name=package_name,
        current_version=str(current),
        target_version=str(target_version),
        update_type=difference_type(current, target_version),
        is_security_update=report.has_vulnerabilities,
    )


class OutdatedDetector:
    """Runs check_package_update over whole catalogs.

    Args:
        registry: Registry gateway used for every lookup.
        tracker: Receives every skipped package; a private one is used if None.
        concurrency: Maximum number of lookups in flight.
    """

    def __init__(
        self,
        registry: RegistryGateway,
        tracker: SkipTracker | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self.registry = registry
        self.tracker = tracker if tracker is not None else SkipTracker()
        self.concurrency = max(1, concurrency)

    def detect(
        self,
        workspace: Workspace,
        catalogs: list[Catalog],
        options: CheckOptions,
    ) -> OutdatedReport:
        """Check the given catalogs and build an OutdatedReport.

        Entries of all catalogs share one worker pool. Results are collected
        in catalog declaration order, so the same input always produces the
        same report regardless of which lookup finished first.

        security_check_failures counts the security lookups that failed open
        during this run, as seen by the tracker shared with the registry.
        """
        package_filter = options.package_filter()
        security_failures_before = self.tracker.counts()["security"]
        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            futures = [
                pool.submit(
                    self._check_entry,
                    catalog.name,
                    package_name,
                    raw_range,
                    options.target_for(package_name),
                    options.include_prerelease,
                )
                for catalog in catalogs
                for package_name, raw_range in catalog.dependencies.items()
                if package_filter.allows(package_name)
            ]
            results = [future.result() for future in futures]

        catalog_infos: list[CatalogUpdateInfo] = []
        for catalog in catalogs:
            outdated: list[OutdatedDependencyInfo] = []
            for result in results:
                if result.catalog_name != catalog.name or result.info is None:
                    continue
                affected = [
                    p.name for p in workspace.packages_using(catalog.name, result.info.package_name)
                ]
                outdated.append(result.info.model_copy(update={"affected_packages": affected}))
            catalog_infos.append(
                CatalogUpdateInfo(
                    catalog_name=catalog.name,
                    outdated_dependencies=outdated,
                    total_packages=len(catalog.dependencies),
                )
            )

        return OutdatedReport(
            workspace_path=workspace.path,
            workspace_name=workspace.name,
            catalogs=catalog_infos,
            skipped=[r.skipped for r in results if r.skipped is not None],
            security_check_failures=self.tracker.counts()["security"] - security_failures_before,
        )

    def _check_entry(
        self,
        catalog_name: str,
        package_name: str,
        raw_range: str,
        target: TargetPolicy,
        include_prerelease: bool,
    ) -> _EntryResult:
        try:
            info = check_package_update(
                self.registry,
                package_name,
                VersionRange(raw_range),
                target,
                include_prerelease,
            )
        except Exception as exc:
            record = self.tracker.track(package_name, exc)
            log.warning(
                "detector.package_skipped",
                catalog=catalog_name,
                package=package_name,
                reason=record.reason,
                error=str(exc),
            )
            return _EntryResult(catalog_name, None, record)
        return _EntryResult(catalog_name, info, None)
