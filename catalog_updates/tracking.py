"""Skipped-package tracking for summary reporting.

A SkipTracker is created per command and passed to whatever needs to
record failures. It is safe to use from the detector's worker threads.
"""

from __future__ import annotations

import threading

from .errors import InvalidVersion, RegistryLookupFailed
from .models import SkippedPackage, SkipReason


def classify_failure(error: BaseException) -> SkipReason:
    """Map an exception to a skip reason.

    An explicit RegistryLookupFailed reason wins; otherwise the message is
    inspected the way registry errors usually read.
    """
    if isinstance(error, RegistryLookupFailed):
        return error.reason  # type: ignore[return-value]
    message = str(error)
    if "404" in message or "not found" in message.lower():
        return "not-found"
    if isinstance(error, InvalidVersion) and "cannot be empty" in message:
        return "empty-version"
    lowered = message.lower()
    if "timeout" in lowered or "timed out" in lowered or "etimedout" in lowered:
        return "network"
    if "connect" in lowered:
        return "network"
    return "other"


class SkipTracker:
    """Collects packages that were skipped and counts failures by kind."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._skipped: list[SkippedPackage] = []
        self._security_failures = 0

    def track(self, package_name: str, error: BaseException) -> SkippedPackage:
        """Record a skipped package and return the record."""
        record = SkippedPackage(
            name=package_name, reason=classify_failure(error), error=str(error)
        )
        with self._lock:
            self._skipped.append(record)
        return record

    def track_security_failure(self) -> None:
        with self._lock:
            self._security_failures += 1

    @property
    def skipped(self) -> list[SkippedPackage]:
        with self._lock:
            return list(self._skipped)

    def by_reason(self) -> dict[SkipReason, list[str]]:
        """Group skipped package names by reason."""
        grouped: dict[SkipReason, list[str]] = {
            "not-found": [],
            "network": [],
            "empty-version": [],
            "other": [],
        }
        for record in self.skipped:
            grouped[record.reason].append(record.name)
        return grouped

    def counts(self) -> dict[str, int]:
        counts = {reason: len(names) for reason, names in self.by_reason().items()}
        with self._lock:
            counts["security"] = self._security_failures
        return counts

    def reset(self) -> None:
        with self._lock:
            self._skipped.clear()
            self._security_failures = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._skipped)
