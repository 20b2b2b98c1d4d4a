"""pnpm workspace reading and writing.

A workspace is a directory holding ``pnpm-workspace.yaml``. Catalogs come
from its ``catalog`` (the "default" catalog) and ``catalogs`` keys; member
packages are found by expanding its ``packages`` globs to directories that
contain a ``package.json``.
"""

from __future__ import annotations

import glob
import json
import shutil
from pathlib import Path
from typing import Any, Protocol

import structlog
import yaml

from .errors import CatalogUpdatesError, PersistenceFailed
from .models import (
    DEFAULT_CATALOG,
    Catalog,
    CatalogReference,
    DependencyType,
    Package,
    Workspace,
)

log = structlog.get_logger("catalog_updates.workspace")

WORKSPACE_FILE = "pnpm-workspace.yaml"
BACKUP_SUFFIX = ".bak"
CATALOG_PROTOCOL = "catalog:"

DEPENDENCY_SECTIONS: tuple[DependencyType, ...] = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)


class WorkspaceRepository(Protocol):
    """Where workspaces are loaded from and saved to."""

    def find_by_path(self, path: str | Path) -> Workspace | None: ...

    def save(self, workspace: Workspace) -> None: ...

    def create_backup(self, workspace: Workspace) -> Path: ...


def parse_catalog_reference(spec: str) -> str | None:
    """Return the catalog name of a ``catalog:`` dependency value.

    Examples:
        "catalog:" → "default"
        "catalog:react17" → "react17"
        "^18.2.0" → None
    """
    spec = spec.strip()
    if not spec.startswith(CATALOG_PROTOCOL):
        return None
    return spec[len(CATALOG_PROTOCOL) :].strip() or DEFAULT_CATALOG


def catalog_references(manifest: dict[str, Any]) -> list[CatalogReference]:
    """Collect the catalog references of a parsed package.json."""
    refs: list[CatalogReference] = []
    for section in DEPENDENCY_SECTIONS:
        deps = manifest.get(section)
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            if not isinstance(spec, str):
                continue
            catalog_name = parse_catalog_reference(spec)
            if catalog_name is not None:
                refs.append(
                    CatalogReference(
                        catalog_name=catalog_name,
                        package_name=name,
                        dependency_type=section,
                    )
                )
    return refs


def _catalog_from_mapping(name: str, raw: Any) -> Catalog:
    deps = raw if isinstance(raw, dict) else {}
    return Catalog(name=name, dependencies={str(k): str(v) for k, v in deps.items()})


def load_catalogs(doc: dict[str, Any]) -> dict[str, Catalog]:
    """Build catalogs from a parsed pnpm-workspace.yaml.

    The top-level ``catalog`` key is the default catalog. A ``default`` entry
    under ``catalogs`` is merged into it.
    """
    catalogs: dict[str, Catalog] = {}
    if isinstance(doc.get("catalog"), dict):
        catalogs[DEFAULT_CATALOG] = _catalog_from_mapping(DEFAULT_CATALOG, doc["catalog"])
    named = doc.get("catalogs")
    if isinstance(named, dict):
        for name, raw in named.items():
            catalog = _catalog_from_mapping(str(name), raw)
            if catalog.name in catalogs:
                catalogs[catalog.name].dependencies.update(catalog.dependencies)
            else:
                catalogs[catalog.name] = catalog
    return catalogs


def expand_package_globs(root: Path, patterns: list[str]) -> list[Path]:
    """Expand pnpm ``packages`` globs to member directories.

    Patterns starting with ``!`` remove matches. Directories inside
    node_modules and directories without a package.json are ignored.
    """
    included: dict[Path, None] = {}
    excluded: set[Path] = set()
    for pattern in patterns:
        negated = pattern.startswith("!")
        pattern = pattern[1:] if negated else pattern
        for match in sorted(glob.glob(str(root / pattern), recursive=True)):
            p = Path(match).resolve()
            if not p.is_dir() or "node_modules" in p.parts:
                continue
            if negated:
                excluded.add(p)
            elif (p / "package.json").is_file():
                included[p] = None
    return [p for p in included if p not in excluded]


def _read_manifest(path: Path) -> dict[str, Any] | None:
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as exc:
        log.warning("workspace.manifest_unreadable", path=str(path), error=str(exc))
        return None
    return data if isinstance(data, dict) else None


class FileWorkspaceRepository:
    """Workspace repository backed by pnpm-workspace.yaml and package.json files."""

    def find_by_path(self, path: str | Path) -> Workspace | None:
        """Load the workspace rooted at path.

        Returns:
            The workspace, or None when path has no pnpm-workspace.yaml.
        """
        root = Path(path).resolve()
        workspace_file = root / WORKSPACE_FILE
        if not workspace_file.is_file():
            return None

        try:
            doc = yaml.safe_load(workspace_file.read_text()) or {}
        except yaml.YAMLError as exc:
            raise CatalogUpdatesError(f"Invalid {workspace_file}: {exc}") from exc
        if not isinstance(doc, dict):
            doc = {}

        member_dirs: list[Path] = []
        if (root / "package.json").is_file():
            member_dirs.append(root)
        patterns = [str(p) for p in doc.get("packages") or []]
        member_dirs.extend(d for d in expand_package_globs(root, patterns) if d != root)

        packages: list[Package] = []
        for d in member_dirs:
            manifest = _read_manifest(d / "package.json")
            if manifest is None:
                continue
            rel = d.relative_to(root)
            packages.append(
                Package(
                    name=manifest.get("name") or d.name,
                    path="." if rel == Path(".") else rel.as_posix(),
                    catalog_references=catalog_references(manifest),
                )
            )

        catalogs = load_catalogs(doc)
        log.debug(
            "workspace.loaded", path=str(root), catalogs=len(catalogs), packages=len(packages)
        )
        return Workspace(
            path=str(root),
            name=root.name,
            catalogs=catalogs,
            packages=packages,
        )

    def discover_workspace(self, path: str | Path | None = None) -> Workspace | None:
        """Find the nearest workspace at or above path (default: cwd)."""
        start = Path(path or Path.cwd()).resolve()
        for candidate in (start, *start.parents):
            if (candidate / WORKSPACE_FILE).is_file():
                return self.find_by_path(candidate)
        return None

    def save(self, workspace: Workspace) -> None:
        """Write the workspace catalogs back to pnpm-workspace.yaml.

        Keys other than ``catalog`` and ``catalogs`` are kept as they are. The
        default catalog goes under ``catalogs.default`` when the file declared
        it there, otherwise under ``catalog``; it is never written to both.

        Raises:
            PersistenceFailed: If the file cannot be read or written.
        """
        workspace_file = Path(workspace.path) / WORKSPACE_FILE
        try:
            doc = yaml.safe_load(workspace_file.read_text()) or {}
            if not isinstance(doc, dict):
                doc = {}
            block = doc.get("catalogs") if isinstance(doc.get("catalogs"), dict) else None
            # Keep the default catalog where the file declared it
            default_in_block = (
                "catalog" not in doc and block is not None and DEFAULT_CATALOG in block
            )
            named = {
                n: dict(c.dependencies)
                for n, c in workspace.catalogs.items()
                if n != DEFAULT_CATALOG or default_in_block
            }
            default = workspace.catalogs.get(DEFAULT_CATALOG)
            if default is not None and not default_in_block:
                doc["catalog"] = dict(default.dependencies)
            if named:
                doc["catalogs"] = named
            elif block is not None:
                del doc["catalogs"]
            workspace_file.write_text(
                yaml.safe_dump(doc, sort_keys=False, default_flow_style=False, allow_unicode=True)
            )
        except (OSError, yaml.YAMLError) as exc:
            raise PersistenceFailed(str(workspace_file), str(exc)) from exc
        log.info("workspace.saved", path=str(workspace_file))

    def create_backup(self, workspace: Workspace) -> Path:
        """Copy pnpm-workspace.yaml next to itself with a .bak suffix.

        Raises:
            PersistenceFailed: If the copy fails.
        """
        source = Path(workspace.path) / WORKSPACE_FILE
        backup = source.with_name(source.name + BACKUP_SUFFIX)
        try:
            shutil.copy2(source, backup)
        except OSError as exc:
            raise PersistenceFailed(str(backup), str(exc)) from exc
        log.info("workspace.backup_created", path=str(backup))
        return backup
