"""Tests for catalog_updates.tracking."""

from __future__ import annotations

from catalog_updates.errors import InvalidVersion, RegistryLookupFailed
from catalog_updates.tracking import SkipTracker, classify_failure


class TestClassifyFailure:
    def test_explicit_reason_wins(self) -> None:
        error = RegistryLookupFailed("react", "timed out", "other")
        assert classify_failure(error) == "other"

    def test_not_found(self) -> None:
        assert classify_failure(RuntimeError("404 Not Found")) == "not-found"

    def test_empty_version(self) -> None:
        assert classify_failure(InvalidVersion("")) == "empty-version"

    def test_network(self) -> None:
        assert classify_failure(TimeoutError("request timed out")) == "network"
        assert classify_failure(OSError("ETIMEDOUT")) == "network"
        assert classify_failure(ConnectionError("connect failed")) == "network"

    def test_other(self) -> None:
        assert classify_failure(ValueError("boom")) == "other"


class TestSkipTracker:
    def test_track_and_group(self) -> None:
        tracker = SkipTracker()
        tracker.track("a", RegistryLookupFailed("a", "404 Not found", "not-found"))
        tracker.track("b", RegistryLookupFailed("b", "failed", "network"))
        tracker.track("c", RegistryLookupFailed("c", "failed", "network"))

        assert len(tracker) == 3
        assert tracker.by_reason()["network"] == ["b", "c"]
        assert tracker.by_reason()["not-found"] == ["a"]

    def test_counts_include_security_failures(self) -> None:
        tracker = SkipTracker()
        tracker.track_security_failure()
        tracker.track_security_failure()
        tracker.track("x", ValueError("boom"))
        counts = tracker.counts()
        assert counts["security"] == 2
        assert counts["other"] == 1
        assert counts["network"] == 0

    def test_reset(self) -> None:
        tracker = SkipTracker()
        tracker.track("x", ValueError("boom"))
        tracker.track_security_failure()
        tracker.reset()
        assert tracker.skipped == []
        assert tracker.counts()["security"] == 0

    def test_trackers_are_independent(self) -> None:
        first, second = SkipTracker(), SkipTracker()
        first.track("x", ValueError("boom"))
        assert len(second) == 0
