"""Command-level façade over the update engine.

CatalogUpdateService wires repository, registry and tracker together for
one command. build_registry creates the npm client described by a config.
"""

from __future__ import annotations

from pathlib import Path

from .cache import RegistryCache
from .config import UpdaterConfig
from .detector import DEFAULT_CONCURRENCY, CheckOptions, OutdatedDetector
from .errors import CatalogNotFound, WorkspaceNotFound
from .executor import execute_plan
from .impact import analyze_impact
from .models import Catalog, ImpactAnalysis, OutdatedReport, UpdatePlan, UpdateResult, Workspace
from .npmrc import load_npmrc
from .planner import build_plan
from .registry import NpmRegistryClient, RegistryGateway
from .tracking import SkipTracker
from .workspace import WorkspaceRepository


class UpdateOptions(CheckOptions):
    """CheckOptions plus what only matters when applying a plan.

    Attributes:
        dry_run: Report what would change without saving.
        force: Apply updates of conflicted packages too.
        create_backup: Back up pnpm-workspace.yaml before saving.
    """

    dry_run: bool = False
    force: bool = False
    create_backup: bool = False


class CatalogUpdateService:
    """Check, plan, apply and analyze catalog updates for one workspace.

    Args:
        repository: Loads and saves workspaces.
        registry: Registry gateway used for every lookup.
        tracker: Skip tracker shared with the registry client, if any.
        concurrency: Maximum number of registry lookups in flight.
    """

    def __init__(
        self,
        repository: WorkspaceRepository,
        registry: RegistryGateway,
        tracker: SkipTracker | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.tracker = tracker if tracker is not None else SkipTracker()
        self.detector = OutdatedDetector(registry, self.tracker, concurrency)

    def load_workspace(self, workspace_path: str | None = None) -> Workspace:
        """Load a workspace (default: the current directory).

        Raises:
            WorkspaceNotFound: If there is no workspace at the path.
        """
        path = workspace_path or str(Path.cwd())
        workspace = self.repository.find_by_path(path)
        if workspace is None:
            raise WorkspaceNotFound(path)
        return workspace

    @staticmethod
    def select_catalogs(workspace: Workspace, catalog_name: str | None) -> list[Catalog]:
        """Return the named catalog, or every catalog when no name is given.

        Raises:
            CatalogNotFound: If the named catalog is missing or the workspace
                has no catalogs at all.
        """
        if catalog_name is not None:
            return [workspace.get_catalog(catalog_name)]
        if not workspace.catalogs:
            raise CatalogNotFound(None)
        return list(workspace.catalogs.values())

    def check_outdated(self, options: CheckOptions) -> OutdatedReport:
        workspace = self.load_workspace(options.workspace_path)
        catalogs = self.select_catalogs(workspace, options.catalog_name)
        return self.detector.detect(workspace, catalogs, options)

    def plan_updates(self, options: CheckOptions) -> UpdatePlan:
        return build_plan(self.check_outdated(options))

    def execute_updates(self, plan: UpdatePlan, options: UpdateOptions) -> UpdateResult:
        return execute_plan(
            plan,
            self.repository,
            dry_run=options.dry_run,
            force=options.force,
            create_backup=options.create_backup,
        )

    def update(self, options: UpdateOptions) -> UpdateResult:
        """Plan and apply in one step."""
        return self.execute_updates(self.plan_updates(options), options)

    def analyze_impact(
        self,
        catalog_name: str,
        package_name: str,
        new_version: str,
        workspace_path: str | None = None,
    ) -> ImpactAnalysis:
        workspace = self.load_workspace(workspace_path)
        return analyze_impact(workspace, self.registry, catalog_name, package_name, new_version)


def build_registry(
    config: UpdaterConfig,
    workspace_path: str | None = None,
    tracker: SkipTracker | None = None,
) -> NpmRegistryClient:
    """Create the npm registry client described by config."""
    advanced = config.advanced
    return NpmRegistryClient(
        advanced.registry,
        npmrc=load_npmrc(Path(workspace_path) if workspace_path else Path.cwd()),
        timeout=advanced.timeout,
        retries=advanced.retries,
        cache=RegistryCache(advanced.cache_validity_minutes),
        tracker=tracker,
    )


def options_from_config(config: UpdaterConfig, **overrides: object) -> UpdateOptions:
    """Build UpdateOptions from config defaults, then apply overrides.

    Overrides whose value is None are ignored; list overrides extend the
    configured include/exclude lists.
    """
    defaults = config.defaults
    values: dict[str, object] = {
        "default_target": defaults.target,
        "include_prerelease": defaults.include_prerelease,
        "include": list(config.include),
        "exclude": list(config.exclude),
        "package_rules": list(config.package_rules),
        "dry_run": defaults.dry_run,
        "create_backup": defaults.create_backup,
    }
    for key, value in overrides.items():
        if value is None:
            continue
        if key in ("include", "exclude"):
            values[key] = [*values[key], *value]  # type: ignore[misc]
        else:
            values[key] = value
    return UpdateOptions(**values)  # type: ignore[arg-type]
