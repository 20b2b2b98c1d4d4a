"""CLI entry point for catalog-updates."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import click

from catalog_updates.config import UpdaterConfig, load_config
from catalog_updates.errors import CatalogUpdatesError
from catalog_updates.logs import setup_logging
from catalog_updates.models import ImpactAnalysis, OutdatedReport, UpdatePlan, UpdateResult
from catalog_updates.service import CatalogUpdateService, build_registry, options_from_config
from catalog_updates.tracking import SkipTracker
from catalog_updates.versions import TARGET_POLICIES
from catalog_updates.workspace import FileWorkspaceRepository


class EngineError(click.ClickException):
    """A CatalogUpdatesError surfaced at the command line ("Error: ..." on stderr)."""

    def __init__(self, error: CatalogUpdatesError) -> None:
        super().__init__(str(error))
        self.exit_code = error.exit_code


@contextmanager
def open_service(
    workspace_path: str | None,
) -> Iterator[tuple[CatalogUpdateService, UpdaterConfig]]:
    """Load config and wire a service; the registry client is closed on exit."""
    config = load_config(workspace_path)
    tracker = SkipTracker()
    registry = build_registry(config, workspace_path, tracker)
    try:
        yield (
            CatalogUpdateService(
                FileWorkspaceRepository(),
                registry,
                tracker=tracker,
                concurrency=config.advanced.concurrency,
            ),
            config,
        )
    except CatalogUpdatesError as exc:
        raise EngineError(exc) from exc
    finally:
        registry.close()


def check_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by check and update."""
    decorators = [
        click.option(
            "-w",
            "--workspace",
            "workspace_path",
            type=click.Path(file_okay=False),
            help="Workspace root (default: current directory).",
        ),
        click.option("--catalog", "catalog_name", help="Only check this catalog."),
        click.option(
            "--target",
            type=click.Choice(TARGET_POLICIES),
            help="Target policy for every package (default: per package rules).",
        ),
        click.option("--prerelease", is_flag=True, help="Allow prerelease versions."),
        click.option("--include", multiple=True, help="Only check matching packages."),
        click.option("--exclude", multiple=True, help="Skip matching packages."),
        click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text."),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


# ── text rendering ─────────────────────────────────────────────────────────


def render_report(report: OutdatedReport) -> None:
    for catalog in report.catalogs:
        if not catalog.outdated_dependencies:
            continue
        click.echo(f"catalog {catalog.catalog_name} ({catalog.outdated_count} outdated)")
        for dep in catalog.outdated_dependencies:
            security = " [security]" if dep.is_security_update else ""
            click.echo(
                f"  {dep.package_name} {dep.current_version} → {dep.target_version}"
                f" ({dep.update_type}){security}"
            )
    if not report.has_updates:
        click.echo("✓ All catalog dependencies are up to date")
    if report.skipped:
        click.echo(f"Skipped {len(report.skipped)} package(s):")
        for skipped in report.skipped:
            click.echo(f"  {skipped.name} ({skipped.reason})")
    if report.security_check_failures:
        click.echo(
            f"⚠ Security check failed for {report.security_check_failures} package(s);"
            " treated as having no known vulnerabilities"
        )


def render_plan(plan: UpdatePlan) -> None:
    for conflict in plan.conflicts:
        proposals = ", ".join(
            f"{c.catalog_name}={c.proposed_version}" for c in conflict.catalogs
        )
        click.echo(f"⚠ {conflict.package_name}: {proposals}. {conflict.recommendation}")


def render_result(result: UpdateResult) -> None:
    prefix = "Would update" if result.dry_run else "Updated"
    for dep in result.updated_dependencies:
        click.echo(
            f"{prefix} {dep.catalog_name}/{dep.package_name}"
            f" {dep.from_version} → {dep.to_version}"
        )
    for dep in result.skipped_dependencies:
        click.echo(f"Skipped {dep.catalog_name}/{dep.package_name}: {dep.reason}")
    for error in result.errors:
        target = f"{error.catalog_name}/{error.package_name}: " if error.package_name else ""
        click.echo(f"Error: {target}{error.error}", err=True)
    click.echo(
        f"{result.total_updated} updated, {result.total_skipped} skipped,"
        f" {result.total_errors} error(s)"
    )


def render_impact(analysis: ImpactAnalysis) -> None:
    click.echo(
        f"{analysis.catalog_name}/{analysis.package_name}: "
        f"{analysis.current_version} → {analysis.proposed_version} ({analysis.update_type})"
    )
    click.echo(f"Risk: {analysis.risk_level}")
    security = analysis.security_impact
    click.echo(
        f"Security: {security.fixed_vulnerabilities} fixed, "
        f"{security.new_vulnerabilities} new ({security.severity_change})"
    )
    click.echo(f"Affected packages: {len(analysis.affected_packages)}")
    for impact in analysis.affected_packages:
        click.echo(f"  {impact.package_name} ({impact.package_path}, {impact.dependency_type})")
    for recommendation in analysis.recommendations:
        click.echo(f"• {recommendation}")


# ── commands ───────────────────────────────────────────────────────────────


@click.group()
@click.version_option(package_name="catalog-updates")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (default: WARNING, or $CATALOG_UPDATES_LOG_LEVEL).",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    help="Log format (default: console, or $CATALOG_UPDATES_LOG_FORMAT).",
)
def cli(log_level: str | None, log_format: str | None) -> None:
    """Keep pnpm workspace catalogs up to date."""
    setup_logging(log_level, log_format)


@cli.command()
@check_options
@click.pass_context
def check(
    ctx: click.Context,
    workspace_path: str | None,
    catalog_name: str | None,
    target: str | None,
    prerelease: bool,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    as_json: bool,
) -> None:
    """Report outdated catalog dependencies (exit 1 when any exist)."""
    with open_service(workspace_path) as (service, config):
        options = options_from_config(
            config,
            workspace_path=workspace_path,
            catalog_name=catalog_name,
            target=target,
            include_prerelease=prerelease or None,
            include=include,
            exclude=exclude,
        )
        report = service.check_outdated(options)

    if as_json:
        click.echo(report.model_dump_json(indent=2))
    else:
        render_report(report)
    ctx.exit(1 if report.has_updates else 0)


@cli.command()
@check_options
@click.option("--dry-run", is_flag=True, help="Show what would change without saving.")
@click.option("--force", is_flag=True, help="Also apply updates of conflicted packages.")
@click.option("--create-backup", is_flag=True, help="Back up pnpm-workspace.yaml first.")
@click.pass_context
def update(
    ctx: click.Context,
    workspace_path: str | None,
    catalog_name: str | None,
    target: str | None,
    prerelease: bool,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    as_json: bool,
    dry_run: bool,
    force: bool,
    create_backup: bool,
) -> None:
    """Update catalog entries to their target versions."""
    with open_service(workspace_path) as (service, config):
        options = options_from_config(
            config,
            workspace_path=workspace_path,
            catalog_name=catalog_name,
            target=target,
            include_prerelease=prerelease or None,
            include=include,
            exclude=exclude,
            dry_run=dry_run or None,
            force=force,
            create_backup=create_backup or None,
        )
        plan = service.plan_updates(options)
        result = service.execute_updates(plan, options)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        render_plan(plan)
        render_result(result)
    ctx.exit(1 if result.errors else 0)


@cli.command()
@click.argument("catalog_name")
@click.argument("package_name")
@click.argument("version")
@click.option(
    "-w",
    "--workspace",
    "workspace_path",
    type=click.Path(file_okay=False),
    help="Workspace root (default: current directory).",
)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text.")
def analyze(
    catalog_name: str,
    package_name: str,
    version: str,
    workspace_path: str | None,
    as_json: bool,
) -> None:
    """Analyze the impact of moving PACKAGE in CATALOG to VERSION."""
    with open_service(workspace_path) as (service, _config):
        analysis = service.analyze_impact(catalog_name, package_name, version, workspace_path)

    if as_json:
        click.echo(analysis.model_dump_json(indent=2))
    else:
        render_impact(analysis)
