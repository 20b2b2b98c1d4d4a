"""Configuration loading.

User settings live in the workspace root, in the first of CONFIG_FILE_NAMES
that exists and parses. They are merged on top of the built-in defaults:
include/exclude lists and package rules are appended and sections are merged
key by key. A few settings can also be overridden from the environment.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import structlog
import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .filters import DEFAULT_PACKAGE_RULES, PackageRule
from .versions import TargetPolicy

log = structlog.get_logger("catalog_updates.config")

CONFIG_FILE_NAMES = ("catalog-updates.toml", ".pcurc.toml", ".pcurc.json")

ENV_CONCURRENCY = "CATALOG_UPDATES_CONCURRENCY"
ENV_TIMEOUT = "CATALOG_UPDATES_TIMEOUT"
ENV_RETRIES = "CATALOG_UPDATES_RETRIES"
ENV_REGISTRY = "CATALOG_UPDATES_REGISTRY"


class _Section(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class DefaultsConfig(_Section):
    target: TargetPolicy = "latest"
    include_prerelease: bool = False
    dry_run: bool = False
    create_backup: bool = False


class AdvancedConfig(_Section):
    """Registry client tuning.

    Attributes:
        concurrency: Registry lookups in flight at once.
        timeout: Per-request timeout in seconds.
        retries: Total attempts per registry request.
        cache_validity_minutes: Base cache TTL; 0 disables caching.
        registry: Registry URL overriding the .npmrc default.
    """

    concurrency: int = Field(default=8, ge=1)
    timeout: float = Field(default=15.0, gt=0)
    retries: int = Field(default=2, ge=1)
    cache_validity_minutes: float = Field(default=10, ge=0)
    registry: str | None = None


class UpdaterConfig(_Section):
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    package_rules: list[PackageRule] = Field(default_factory=list)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)


def default_config() -> UpdaterConfig:
    return UpdaterConfig(package_rules=list(DEFAULT_PACKAGE_RULES))


def _merge_section(base: _Section, user: _Section) -> Any:
    return base.model_copy(update={k: getattr(user, k) for k in user.model_fields_set})


def merge_config(base: UpdaterConfig, user: UpdaterConfig) -> UpdaterConfig:
    """Merge user settings on top of base.

    Only keys the user actually set take part, so an empty user section
    leaves the defaults untouched.
    """
    update: dict[str, Any] = {
        "include": [*base.include, *user.include],
        "exclude": [*base.exclude, *user.exclude],
        "package_rules": [*base.package_rules, *user.package_rules],
    }
    for section in ("defaults", "advanced"):
        if section in user.model_fields_set:
            update[section] = _merge_section(getattr(base, section), getattr(user, section))
    return base.model_copy(update=update)


def parse_config_file(path: Path) -> UpdaterConfig:
    """Read one config file (TOML or JSON).

    Raises:
        ValueError: If the file is not valid TOML/JSON or has invalid values.
        OSError: If the file cannot be read.
    """
    text = path.read_text()
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        data = tomlkit.parse(text).unwrap()
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain a table/object at the top level")
    return UpdaterConfig.model_validate(data)


def find_user_config(workspace_path: Path) -> UpdaterConfig | None:
    """Return the first config file in workspace_path that loads cleanly."""
    for name in CONFIG_FILE_NAMES:
        path = workspace_path / name
        if not path.is_file():
            continue
        try:
            config = parse_config_file(path)
        except (OSError, ValueError, ValidationError) as exc:
            log.warning("config.load_failed", path=str(path), error=str(exc))
            continue
        log.debug("config.loaded", path=str(path))
        return config
    return None


def apply_env_overrides(
    config: UpdaterConfig, environ: dict[str, str] | None = None
) -> UpdaterConfig:
    """Apply CATALOG_UPDATES_* environment variables to the advanced section.

    Invalid values are logged and ignored.
    """
    env = os.environ if environ is None else environ
    raw: dict[str, Any] = {}
    for var, field in (
        (ENV_CONCURRENCY, "concurrency"),
        (ENV_TIMEOUT, "timeout"),
        (ENV_RETRIES, "retries"),
        (ENV_REGISTRY, "registry"),
    ):
        value = env.get(var)
        if value:
            raw[field] = value
    if not raw:
        return config
    try:
        advanced = AdvancedConfig.model_validate({**config.advanced.model_dump(), **raw})
    except ValidationError as exc:
        log.warning("config.env_override_invalid", error=str(exc))
        return config
    return config.model_copy(update={"advanced": advanced})


def load_config(
    workspace_path: str | Path | None = None, environ: dict[str, str] | None = None
) -> UpdaterConfig:
    """Build the effective configuration for a workspace.

    Defaults, then the workspace's config file (if any), then environment
    overrides. Nothing is cached between calls.
    """
    root = Path(workspace_path) if workspace_path is not None else Path.cwd()
    config = default_config()
    user = find_user_config(root)
    if user is not None:
        config = merge_config(config, user)
    return apply_env_overrides(config, environ)
