"""Exception types raised by the update engine.

Per-item failures (one package, one catalog entry) are caught close to where
they happen and turned into skip/error records. Only workspace-level failures
are expected to reach the command boundary.
"""

from __future__ import annotations


class CatalogUpdatesError(Exception):
    """Base exception for all catalog-updates errors."""

    exit_code = 2


class InvalidVersion(CatalogUpdatesError, ValueError):
    """Raised when a string is not a valid semantic version."""

    def __init__(self, value: str, detail: str | None = None):
        self.value = value
        if not value.strip():
            message = "Version string cannot be empty"
        else:
            message = f"Invalid version: '{value}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InvalidRange(CatalogUpdatesError, ValueError):
    """Raised when a string is not a valid npm version range."""

    def __init__(self, value: str, detail: str | None = None):
        self.value = value
        message = f"Invalid version range: '{value}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class RegistryLookupFailed(CatalogUpdatesError):
    """Raised when the registry cannot answer for a package.

    ``reason`` is one of ``not-found``, ``network``, ``empty-version`` or
    ``other`` and feeds the skipped-package summary.
    """

    exit_code = 1

    def __init__(self, package_name: str, message: str, reason: str = "other"):
        self.package_name = package_name
        self.reason = reason
        super().__init__(f"{package_name}: {message}")


class WorkspaceNotFound(CatalogUpdatesError):
    """Raised when no pnpm workspace exists at the requested path."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No pnpm workspace found at {path}")


class CatalogNotFound(CatalogUpdatesError):
    """Raised when a named catalog does not exist in the workspace."""

    def __init__(self, catalog_name: str | None):
        self.catalog_name = catalog_name
        if catalog_name is None:
            super().__init__("No catalogs found in workspace")
        else:
            super().__init__(f'Catalog "{catalog_name}" not found')


class PackageNotFound(CatalogUpdatesError):
    """Raised when a package is not declared in the given catalog."""

    def __init__(self, package_name: str, catalog_name: str):
        self.package_name = package_name
        self.catalog_name = catalog_name
        super().__init__(
            f'Package "{package_name}" not found in catalog "{catalog_name}"'
        )


class PersistenceFailed(CatalogUpdatesError):
    """Raised by a repository when writing the workspace back to disk fails."""

    exit_code = 1

    def __init__(self, path: str, detail: str):
        self.path = path
        super().__init__(f"Failed to save workspace at {path}: {detail}")
