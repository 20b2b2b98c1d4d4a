"""Impact analysis for a single proposed catalog update.

Answers "what happens if catalog X moves package Y to version Z": which
workspace packages are affected, how risky the change is, and whether it
fixes or introduces known vulnerabilities.
"""

from __future__ import annotations

from .models import (
    ImpactAnalysis,
    PackageImpact,
    RiskLevel,
    SecurityImpact,
    SecurityReport,
    Workspace,
)
from .registry import RegistryGateway
from .versions import UpdateType, difference_type, parse_version

REC_SECURITY_FIX = "Security update recommended - fixes known vulnerabilities"
REC_NEW_VULNERABILITIES = "New vulnerabilities detected - review carefully before updating"
REC_CHANGELOG = "Review changelog for breaking changes before updating"
REC_STAGED_TESTING = "Test thoroughly in a development environment before rolling out"
REC_BATCHES = "Many packages affected - consider updating in batches"
REC_LOW_RISK = "Low risk update - safe to proceed"

_COMPATIBILITY_RISK: dict[UpdateType, RiskLevel] = {
    "major": "high",
    "minor": "medium",
    "patch": "low",
    "none": "low",
}


def compatibility_risk(update_type: UpdateType) -> RiskLevel:
    return _COMPATIBILITY_RISK[update_type]


def security_impact(current: SecurityReport, proposed: SecurityReport) -> SecurityImpact:
    """Compare the advisories of the current and proposed versions.

    Advisories are matched by id: ones only present for the current version
    are fixed, ones only present for the proposed version are new.
    """
    current_ids = {v.id for v in current.vulnerabilities}
    proposed_ids = {v.id for v in proposed.vulnerabilities}
    fixed = len(current_ids - proposed_ids)
    new = len(proposed_ids - current_ids)
    if fixed > new:
        change = "better"
    elif new > fixed:
        change = "worse"
    else:
        change = "same"
    return SecurityImpact(
        has_vulnerabilities=current.has_vulnerabilities or proposed.has_vulnerabilities,
        fixed_vulnerabilities=fixed,
        new_vulnerabilities=new,
        severity_change=change,
    )


def overall_risk(
    update_type: UpdateType, affected_count: int, security: SecurityImpact
) -> RiskLevel:
    """Combine update type, blast radius and security delta into one level.

    Fixing vulnerabilities lowers the risk (to medium at most, for a major
    update); introducing them makes it high. Otherwise majors are high when
    more than 5 packages are affected, minors are medium above 10.
    """
    if security.fixed_vulnerabilities > 0:
        return "medium" if update_type == "major" else "low"
    if security.new_vulnerabilities > 0:
        return "high"
    if update_type == "major":
        return "high" if affected_count > 5 else "medium"
    if update_type == "minor":
        return "medium" if affected_count > 10 else "low"
    return "low"


def recommendations(
    update_type: UpdateType,
    security: SecurityImpact,
    impacts: list[PackageImpact],
) -> list[str]:
    """Build human-readable advice, security notes first."""
    advice: list[str] = []
    if security.fixed_vulnerabilities > 0:
        advice.append(REC_SECURITY_FIX)
    if security.new_vulnerabilities > 0:
        advice.append(REC_NEW_VULNERABILITIES)
    if update_type == "major":
        advice.append(REC_CHANGELOG)
        advice.append(REC_STAGED_TESTING)
    breaking = sum(1 for impact in impacts if impact.is_breaking_change)
    if breaking:
        advice.append(f"{breaking} package(s) may need code changes")
    if len(impacts) > 5:
        advice.append(REC_BATCHES)
    if not advice:
        advice.append(REC_LOW_RISK)
    return advice


def analyze_impact(
    workspace: Workspace,
    registry: RegistryGateway,
    catalog_name: str,
    package_name: str,
    new_version: str,
) -> ImpactAnalysis:
    """Analyze updating one catalog entry to new_version.

    Raises:
        CatalogNotFound: If the catalog does not exist.
        PackageNotFound: If the package is not in the catalog.
        InvalidVersion: If new_version is not a semantic version.
        InvalidRange: If the current catalog value is not a usable range.
    """
    catalog = workspace.get_catalog(catalog_name)
    current_range = catalog.get_range(package_name)
    proposed = parse_version(new_version)
    current = current_range.min_version
    update_type = difference_type(current, proposed)

    impacts: list[PackageImpact] = []
    for package in workspace.packages_using(catalog_name, package_name):
        for ref in package.catalog_references:
            if ref.catalog_name != catalog_name or ref.package_name != package_name:
                continue
            impacts.append(
                PackageImpact(
                    package_name=package.name,
                    package_path=package.path,
                    dependency_type=ref.dependency_type,
                    is_breaking_change=update_type == "major",
                    compatibility_risk=compatibility_risk(update_type),
                )
            )

    security = security_impact(
        registry.security_report(package_name, str(current)),
        registry.security_report(package_name, str(proposed)),
    )
    return ImpactAnalysis(
        package_name=package_name,
        catalog_name=catalog_name,
        current_version=current_range.raw,
        proposed_version=str(proposed),
        update_type=update_type,
        affected_packages=impacts,
        risk_level=overall_risk(update_type, len(impacts), security),
        security_impact=security,
        recommendations=recommendations(update_type, security, impacts),
    )
