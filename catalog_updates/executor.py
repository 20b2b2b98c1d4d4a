"""Applying an update plan to a workspace.

Each planned update ends up applied, skipped or errored. Mutations happen
in memory, one at a time; the workspace file is written once at the end,
and only when something was applied and this is not a dry run.
"""

from __future__ import annotations

import structlog

from .errors import WorkspaceNotFound
from .models import (
    SkippedDependency,
    UpdatedDependency,
    UpdateError,
    UpdatePlan,
    UpdateResult,
)
from .workspace import WorkspaceRepository

log = structlog.get_logger("catalog_updates.executor")

CONFLICT_SKIP_REASON = "Version conflict - use --force to override"


def execute_plan(
    plan: UpdatePlan,
    repository: WorkspaceRepository,
    *,
    dry_run: bool = False,
    force: bool = False,
    create_backup: bool = False,
) -> UpdateResult:
    """Apply plan to the workspace it was built for.

    Args:
        plan: The plan to apply.
        repository: Loads the workspace and persists the result.
        dry_run: Classify and apply in memory, never save.
        force: Apply updates of conflicted packages too.
        create_backup: Back up the workspace file before saving.

    Returns:
        The result. A failed backup or save is recorded as a single fatal
        error; updates applied in memory before it are still listed.

    Raises:
        WorkspaceNotFound: If the plan's workspace no longer exists.
    """
    workspace = repository.find_by_path(plan.workspace_path)
    if workspace is None:
        raise WorkspaceNotFound(plan.workspace_path)

    conflicted = plan.conflicted_packages()
    updated: list[UpdatedDependency] = []
    skipped: list[SkippedDependency] = []
    errors: list[UpdateError] = []

    for update in plan.updates:
        if update.package_name in conflicted and not force:
            skipped.append(
                SkippedDependency(
                    catalog_name=update.catalog_name,
                    package_name=update.package_name,
                    current_version=update.current_version,
                    reason=CONFLICT_SKIP_REASON,
                )
            )
            continue
        try:
            workspace.update_catalog_dependency(
                update.catalog_name, update.package_name, update.new_version
            )
        except Exception as exc:
            log.warning(
                "executor.update_failed",
                catalog=update.catalog_name,
                package=update.package_name,
                error=str(exc),
            )
            errors.append(
                UpdateError(
                    catalog_name=update.catalog_name,
                    package_name=update.package_name,
                    error=str(exc),
                )
            )
            continue
        updated.append(
            UpdatedDependency(
                catalog_name=update.catalog_name,
                package_name=update.package_name,
                from_version=update.current_version,
                to_version=update.new_version,
                update_type=update.update_type,
            )
        )

    if updated and not dry_run:
        try:
            if create_backup:
                repository.create_backup(workspace)
            repository.save(workspace)
        except Exception as exc:
            log.error("executor.save_failed", path=workspace.path, error=str(exc))
            errors.append(UpdateError(error=f"Failed to save workspace: {exc}", fatal=True))

    return UpdateResult(
        workspace_path=workspace.path,
        workspace_name=workspace.name,
        dry_run=dry_run,
        updated_dependencies=updated,
        skipped_dependencies=skipped,
        errors=errors,
    )
