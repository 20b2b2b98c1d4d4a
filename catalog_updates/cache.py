"""Registry response cache.

One cache object is created per command and handed to the registry client,
so nothing leaks between invocations (or between tests). Entries are keyed
by ``(kind, registry_url, package_name[, version])`` and each kind has its
own TTL: version lists change often, security data rarely.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from typing import Any, Literal

CacheKind = Literal["versions", "package-info", "security"]
CACHE_KINDS: tuple[CacheKind, ...] = ("versions", "package-info", "security")

# TTL multipliers relative to the configured base validity
_TTL_FACTORS: dict[CacheKind, int] = {"versions": 1, "package-info": 2, "security": 6}


class RegistryCache:
    """Thread-safe TTL cache shared by the registry worker pool.

    Args:
        validity_minutes: Base validity. Versions live this long, package
            info twice as long, security reports six times as long. Zero
            disables caching entirely.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        validity_minutes: float = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.enabled = validity_minutes > 0
        self.ttls: dict[CacheKind, float] = {
            kind: validity_minutes * 60 * factor for kind, factor in _TTL_FACTORS.items()
        }
        self._clock = clock
        self._entries: dict[tuple[Hashable, ...], tuple[float, Any]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(kind: CacheKind, registry_url: str, package_name: str, *extra: str) -> tuple[str, ...]:
        return (kind, registry_url, package_name, *extra)

    def get(self, key: tuple[str, ...]) -> Any | None:
        """Return a cached value, or None if missing or expired."""
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._is_expired(key, stored_at):
                del self._entries[key]
                return None
            return value

    def set(self, key: tuple[str, ...], value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def clear(self, kind: CacheKind | None = None) -> None:
        """Drop all entries, or only the entries of one kind."""
        with self._lock:
            if kind is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == kind]:
                del self._entries[key]

    def stats(self) -> dict[str, int]:
        """Count live entries per kind, plus the total and expired counts."""
        counts = {"total": 0, "expired": 0, **{kind: 0 for kind in CACHE_KINDS}}
        with self._lock:
            for key, (stored_at, _) in self._entries.items():
                counts["total"] += 1
                if self._is_expired(key, stored_at):
                    counts["expired"] += 1
                else:
                    counts[str(key[0])] += 1
        return counts

    def _is_expired(self, key: tuple[Hashable, ...], stored_at: float) -> bool:
        ttl = self.ttls.get(key[0], self.ttls["versions"])  # type: ignore[call-overload]
        return self._clock() - stored_at > ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
