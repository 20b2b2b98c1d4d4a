"""Update planning: outdated report → planned updates + version conflicts.

A conflict exists when the same package is proposed at different versions
in two or more catalogs. Conflicts are findings, not errors; the executor
uses them to decide what to skip.
"""

from __future__ import annotations

from .models import (
    ConflictEntry,
    OutdatedDependencyInfo,
    OutdatedReport,
    PlannedUpdate,
    UpdatePlan,
    VersionConflict,
)

CONFLICT_RECOMMENDATION = "Consider using the same version across all catalogs"


def update_reason(outdated: OutdatedDependencyInfo) -> str:
    """Explain why an update is proposed.

    Security wins over the update type, which is reported major > minor >
    patch.
    """
    if outdated.is_security_update:
        return "Security update available"
    if outdated.update_type == "major":
        return "Major version update available"
    if outdated.update_type == "minor":
        return "Minor version update available"
    if outdated.update_type == "patch":
        return "Patch version update available"
    return "Update available"


def planned_updates(report: OutdatedReport) -> list[PlannedUpdate]:
    """Turn every finding in the report into a PlannedUpdate."""
    return [
        PlannedUpdate(
            catalog_name=catalog.catalog_name,
            package_name=outdated.package_name,
            current_version=outdated.current_version,
            new_version=outdated.target_version,
            update_type=outdated.update_type,
            reason=update_reason(outdated),
            is_security_update=outdated.is_security_update,
            affected_packages=list(outdated.affected_packages),
        )
        for catalog in report.catalogs
        for outdated in catalog.outdated_dependencies
    ]


def detect_conflicts(updates: list[PlannedUpdate]) -> list[VersionConflict]:
    """Find packages proposed at different versions across catalogs.

    Updates may arrive in any order; grouping is done on a sorted copy so the
    conflicts (and the catalogs listed in each) come out sorted by package
    name, then catalog name.
    """
    by_package: dict[str, list[PlannedUpdate]] = {}
    for update in sorted(updates, key=lambda u: (u.package_name, u.catalog_name)):
        by_package.setdefault(update.package_name, []).append(update)

    conflicts: list[VersionConflict] = []
    for package_name, package_updates in by_package.items():
        if len(package_updates) < 2:
            continue
        if len({u.new_version for u in package_updates}) < 2:
            continue
        conflicts.append(
            VersionConflict(
                package_name=package_name,
                catalogs=[
                    ConflictEntry(
                        catalog_name=u.catalog_name,
                        current_version=u.current_version,
                        proposed_version=u.new_version,
                    )
                    for u in package_updates
                ],
                recommendation=CONFLICT_RECOMMENDATION,
            )
        )
    return conflicts


def build_plan(report: OutdatedReport) -> UpdatePlan:
    """Build the update plan for an outdated report."""
    updates = planned_updates(report)
    return UpdatePlan(
        workspace_path=report.workspace_path,
        workspace_name=report.workspace_name,
        updates=updates,
        conflicts=detect_conflicts(updates),
    )
