"""Minimal .npmrc reader for registry selection and auth tokens."""

from __future__ import annotations

import os
import re
from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_REGISTRY = "https://registry.npmjs.org/"

_ENV_RE = re.compile(r"\$\{([^}]+)\}")


class NpmrcConfig(BaseModel):
    """Registry settings gathered from .npmrc files.

    Attributes:
        registry: Default registry URL, always with a trailing slash.
        scoped_registries: Map of "@scope" → registry URL.
        auth_tokens: Map of "//host/path/" prefix → token.
    """

    registry: str = DEFAULT_REGISTRY
    scoped_registries: dict[str, str] = Field(default_factory=dict)
    auth_tokens: dict[str, str] = Field(default_factory=dict)

    def registry_for(self, package_name: str) -> str:
        if package_name.startswith("@") and "/" in package_name:
            scope = package_name.split("/", 1)[0]
            if scope in self.scoped_registries:
                return self.scoped_registries[scope]
        return self.registry

    def token_for(self, registry_url: str) -> str | None:
        """Return the auth token whose "//host/path/" prefix matches the URL."""
        bare = re.sub(r"^https?:", "", registry_url)
        best: str | None = None
        best_len = -1
        for prefix, token in self.auth_tokens.items():
            if bare.startswith(prefix) and len(prefix) > best_len:
                best, best_len = token, len(prefix)
        return best


def _normalize_url(url: str) -> str:
    return url if url.endswith("/") else url + "/"


def _expand_env(value: str) -> str:
    return _ENV_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)


def parse_npmrc(text: str, config: NpmrcConfig | None = None) -> NpmrcConfig:
    """Apply the settings of one .npmrc file on top of config."""
    config = config or NpmrcConfig()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", ";")) or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        value = _expand_env(value.strip("\"'"))
        if key == "registry":
            config.registry = _normalize_url(value)
        elif key.startswith("@") and key.endswith(":registry"):
            config.scoped_registries[key[: -len(":registry")]] = _normalize_url(value)
        elif key.startswith("//") and key.endswith(":_authToken"):
            config.auth_tokens[_normalize_url(key[: -len(":_authToken")])] = value
    return config


def load_npmrc(workspace_path: Path | None = None) -> NpmrcConfig:
    """Read ~/.npmrc, then the workspace's .npmrc, later files winning."""
    config = NpmrcConfig()
    candidates = [Path.home() / ".npmrc"]
    if workspace_path is not None:
        candidates.append(Path(workspace_path) / ".npmrc")
    for path in candidates:
        if path.is_file():
            config = parse_npmrc(path.read_text(), config)
    return config
