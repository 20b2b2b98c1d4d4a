"""npm registry access: version lists, target resolution, security advisories.

The engine only depends on the RegistryGateway protocol. NpmRegistryClient
is the HTTP implementation; it owns retries, backoff and caching so callers
can treat every call as a plain synchronous lookup.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol
from urllib.parse import quote

import httpx
import semver
import structlog

from .cache import CacheKind, RegistryCache
from .errors import InvalidRange, RegistryLookupFailed
from .models import PackageInfo, PackageVersions, SecurityReport, SecurityVulnerability
from .npmrc import NpmrcConfig
from .tracking import SkipTracker
from .versions import TargetPolicy, VersionRange, compare, parse_version

log = structlog.get_logger("catalog_updates.registry")

_RETRY_BASE_DELAY = 1.0  # seconds
_MAX_RETRY_DELAY = 10.0
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class RegistryGateway(Protocol):
    """What the update engine needs from a package registry."""

    def resolve_target(
        self,
        package_name: str,
        policy: TargetPolicy,
        current_range: VersionRange | None = None,
        include_prerelease: bool = False,
    ) -> semver.Version: ...

    def security_report(self, package_name: str, version: str) -> SecurityReport: ...


def _published_at(timestamp: str | None) -> datetime:
    if not timestamp:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _sorted_versions(raw_versions: Any) -> list[semver.Version]:
    """Parse packument version keys, dropping invalid ones, greatest first."""
    parsed: list[semver.Version] = []
    for raw in raw_versions or {}:
        try:
            parsed.append(parse_version(raw))
        except ValueError:
            continue
    parsed.sort(reverse=True)
    return parsed


def _repository_url(repository: Any) -> str | None:
    if isinstance(repository, dict):
        return repository.get("url")
    if isinstance(repository, str):
        return repository
    return None


class NpmRegistryClient:
    """Synchronous npm registry client with retries and a per-command cache.

    Args:
        registry_url: Overrides the default registry from .npmrc.
        npmrc: Registry/scope/token settings.
        timeout: Per-request timeout in seconds.
        retries: Total attempts per request (at least one).
        cache: Response cache; a fresh one is created when omitted.
        tracker: Receives security-check failure counts.
        transport: Custom httpx transport (tests use httpx.MockTransport).
        sleep: Sleep function used for backoff.
    """

    def __init__(
        self,
        registry_url: str | None = None,
        *,
        npmrc: NpmrcConfig | None = None,
        timeout: float = 15.0,
        retries: int = 2,
        cache: RegistryCache | None = None,
        tracker: SkipTracker | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        retry_base_delay: float = _RETRY_BASE_DELAY,
    ) -> None:
        self.npmrc = npmrc or NpmrcConfig()
        if registry_url:
            normalized = registry_url if registry_url.endswith("/") else registry_url + "/"
            self.npmrc = self.npmrc.model_copy(update={"registry": normalized})
        self.timeout = timeout
        self.retries = max(1, retries)
        self.cache = cache if cache is not None else RegistryCache()
        self.tracker = tracker if tracker is not None else SkipTracker()
        self._sleep = sleep
        self._retry_base_delay = retry_base_delay
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"User-Agent": "catalog-updates"},
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> NpmRegistryClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── lookups ────────────────────────────────────────────────────────────

    def get_package_versions(self, package_name: str) -> PackageVersions:
        """Fetch the version list, dist-tags and publish times of a package.

        Raises:
            RegistryLookupFailed: On 404, exhausted retries, or a bad response.
        """
        registry = self.npmrc.registry_for(package_name)
        key = RegistryCache.key("versions", registry, package_name)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        packument = self._fetch_packument(registry, package_name)
        versions = self._versions_from_packument(package_name, packument)
        self.cache.set(key, versions)
        return versions

    def get_package_info(self, package_name: str) -> PackageInfo:
        """Like get_package_versions, plus descriptive metadata."""
        registry = self.npmrc.registry_for(package_name)
        key = RegistryCache.key("package-info", registry, package_name)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        packument = self._fetch_packument(registry, package_name)
        versions = self._versions_from_packument(package_name, packument)
        license_ = packument.get("license")
        info = PackageInfo(
            **versions.model_dump(),
            description=packument.get("description"),
            homepage=packument.get("homepage"),
            license=license_ if isinstance(license_, str) else None,
            repository=_repository_url(packument.get("repository")),
        )
        self.cache.set(key, info)
        return info

    def resolve_target(
        self,
        package_name: str,
        policy: TargetPolicy,
        current_range: VersionRange | None = None,
        include_prerelease: bool = False,
    ) -> semver.Version:
        """Pick the candidate version for a package under a target policy.

        Policies:
            latest: the ``latest`` dist-tag.
            greatest: greatest version satisfying current_range, or the
                greatest version overall when no range is given.
            newest: the most recently published version.
            minor / patch: highest version that keeps the current major
                (resp. major.minor). If there is none, the current minimum
                version is returned unchanged.

        Raises:
            RegistryLookupFailed: If the registry lookup fails or the policy
                finds no candidate at all.
            ValueError: For an unknown policy.
        """
        info = self.get_package_versions(package_name)
        parsed = [parse_version(v) for v in info.versions]
        candidates = parsed if include_prerelease else [v for v in parsed if v.prerelease is None]

        if policy == "latest":
            if not info.latest_version:
                raise RegistryLookupFailed(
                    package_name, "Version string cannot be empty", "empty-version"
                )
            return parse_version(info.latest_version)

        if policy == "greatest":
            if current_range is not None:
                matching = [
                    v for v in parsed if current_range.satisfies(v, include_prerelease)
                ]
            else:
                matching = candidates
            if not matching:
                raise RegistryLookupFailed(
                    package_name, f"No versions satisfy range {current_range}", "other"
                )
            return matching[0]

        if policy == "newest":
            if not candidates:
                raise RegistryLookupFailed(package_name, "No versions found", "empty-version")
            return max(candidates, key=lambda v: _published_at(info.time.get(str(v))))

        if policy in ("minor", "patch"):
            if current_range is None:
                raise RegistryLookupFailed(
                    package_name, f"'{policy}' target needs the current range", "other"
                )
            current = current_range.min_version
            for version in candidates:
                if version.major != current.major:
                    continue
                if policy == "patch" and version.minor != current.minor:
                    continue
                if compare(version, current) >= 0:
                    return version
            return current

        raise ValueError(f"Unknown target policy: {policy}")

    def security_report(self, package_name: str, version: str) -> SecurityReport:
        """Return advisories that affect package_name@version.

        Never raises: any failure is logged, counted on the tracker, and
        reported as "no known vulnerabilities". Only successful lookups are
        cached.
        """
        registry = self.npmrc.registry_for(package_name)
        key = RegistryCache.key("security", registry, package_name, version)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            response = self._request_with_retry(
                "POST",
                f"{registry}-/npm/v1/security/advisories/bulk",
                package_name,
                registry=registry,
                json={package_name: [version]},
            )
            advisories = response.json().get(package_name, [])
            vulnerabilities = [
                SecurityVulnerability(
                    id=str(advisory.get("id", "")),
                    title=advisory.get("title") or "",
                    severity=advisory.get("severity") or "low",
                    url=advisory.get("url") or "",
                    vulnerable_versions=advisory.get("vulnerable_versions") or "",
                )
                for advisory in advisories
                if self._affects(advisory, version)
            ]
        except Exception as exc:
            log.warning(
                "security.check_failed",
                package=package_name,
                version=version,
                error=str(exc),
            )
            self.tracker.track_security_failure()
            return SecurityReport(package=package_name, version=version)

        report = SecurityReport(
            package=package_name, version=version, vulnerabilities=vulnerabilities
        )
        self.cache.set(key, report)
        return report

    def clear_cache(self, kind: CacheKind | None = None) -> None:
        self.cache.clear(kind)

    # ── internal ───────────────────────────────────────────────────────────

    @staticmethod
    def _affects(advisory: dict[str, Any], version: str) -> bool:
        """Check the advisory's vulnerable range; unparsable ranges count as affecting."""
        vulnerable = advisory.get("vulnerable_versions")
        if not vulnerable:
            return True
        try:
            return VersionRange(vulnerable).satisfies(parse_version(version), True)
        except (InvalidRange, ValueError):
            return True

    def _versions_from_packument(
        self, package_name: str, packument: dict[str, Any]
    ) -> PackageVersions:
        parsed = _sorted_versions(packument.get("versions"))
        versions = [str(v) for v in parsed]
        tags = dict(packument.get("dist-tags") or {})
        latest = tags.get("latest")
        if not latest:
            stable = [str(v) for v in parsed if v.prerelease is None]
            latest = stable[0] if stable else (versions[0] if versions else "")
        times = packument.get("time") or {}
        return PackageVersions(
            name=packument.get("name") or package_name,
            versions=versions,
            latest_version=latest,
            tags=tags,
            time={v: times[v] for v in versions if v in times},
        )

    def _fetch_packument(self, registry: str, package_name: str) -> dict[str, Any]:
        url = f"{registry}{quote(package_name, safe='@')}"
        response = self._request_with_retry(
            "GET",
            url,
            package_name,
            registry=registry,
            headers={"Accept": "application/json"},
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise RegistryLookupFailed(package_name, f"invalid JSON: {exc}", "other") from exc
        if not isinstance(data, dict):
            raise RegistryLookupFailed(package_name, "unexpected packument shape", "other")
        return data

    def _request_with_retry(
        self,
        method: str,
        url: str,
        package_name: str,
        *,
        registry: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying timeouts, transport errors and 5xx with backoff."""
        request_headers = dict(headers or {})
        token = self.npmrc.token_for(registry)
        if token:
            request_headers["Authorization"] = f"Bearer {token}"

        last_exc: Exception | None = None
        for attempt in range(1, self.retries + 1):
            try:
                response = self._client.request(method, url, headers=request_headers, **kwargs)
            except httpx.TimeoutException as exc:
                log.warning("registry.timeout", package=package_name, attempt=attempt)
                last_exc = exc
            except httpx.TransportError as exc:
                log.warning(
                    "registry.transport_error",
                    package=package_name,
                    attempt=attempt,
                    error=str(exc),
                )
                last_exc = exc
            else:
                if response.status_code == 404:
                    raise RegistryLookupFailed(package_name, "404 Not found", "not-found")
                if response.status_code < 500:
                    if response.is_error:
                        raise RegistryLookupFailed(
                            package_name, f"HTTP {response.status_code}", "other"
                        )
                    return response
                log.warning(
                    "registry.server_error",
                    package=package_name,
                    status=response.status_code,
                    attempt=attempt,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{response.status_code}", request=response.request, response=response
                )

            if attempt < self.retries:
                delay = min(self._retry_base_delay * 2 ** (attempt - 1), _MAX_RETRY_DELAY)
                log.info("registry.retry", package=package_name, attempt=attempt, delay=delay)
                self._sleep(delay)

        raise RegistryLookupFailed(
            package_name,
            f"failed after {self.retries} attempts: timeout or network error ({last_exc})",
            "network",
        )
