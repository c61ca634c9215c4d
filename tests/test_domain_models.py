"""Tests for domain models."""
import dataclasses
from datetime import datetime, timezone
import pytest
from issue_label_watcher.domain.models import (
    PersistedState,
    WatchedRepository,
    WatchMetrics,
    format_timestamp,
    parse_timestamp,
)


def test_watched_repository_creation():
    """Test creating an immutable WatchedRepository entity."""
    repo = WatchedRepository(owner="dotnet", name="runtime", labels=("bug",), watch_pull_requests=True)

    assert repo.full_name == "dotnet/runtime"
    assert repo.labels == ("bug",)
    assert repo.watch_pinned is False
    assert repo.watch_pull_requests is True

    with pytest.raises(dataclasses.FrozenInstanceError):
        repo.name = "other"


def test_seen_issues_matches_repository_case_insensitively():
    """Test that seen-sets are shared between spellings of the same repository."""
    state = PersistedState()
    state.seen_issues("Owner/Repo").add("1")
    state.seen_issues("owner/repo").add("2")

    assert list(state.issues_by_repo) == ["Owner/Repo"]
    assert state.seen_issues("OWNER/REPO") == {"1", "2"}
    assert state.total_issues == 2


def test_state_document_shape():
    """Test the persisted document uses the stored field names."""
    state = PersistedState(last_run_time=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    state.seen_issues("o/n").update({"3", "1"})

    assert state.to_document() == {
        "lastRunTime": "2024-01-02T03:04:05Z",
        "repos": [{"fullName": "o/n", "issueNumbers": ["1", "3"]}],
    }


def test_state_from_document_merges_case_variants():
    """Test loading a document whose repository keys differ only in case."""
    state = PersistedState.from_document({
        "lastRunTime": "2024-01-02T03:04:05Z",
        "repos": [
            {"fullName": "o/N", "issueNumbers": ["1"]},
            {"fullName": "O/n", "issueNumbers": ["2"]},
        ],
    })

    assert state.last_run_time == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert state.issues_by_repo == {"o/N": {"1", "2"}}


def test_empty_document_yields_empty_state():
    """Test that a document without a last run time loads as a first run."""
    state = PersistedState.from_document({})

    assert state.last_run_time is None
    assert state.total_issues == 0


def test_timestamps():
    """Test GitHub timestamp parsing and formatting."""
    parsed = parse_timestamp("2024-03-01T10:00:00Z")

    assert parsed == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert format_timestamp(parsed) == "2024-03-01T10:00:00Z"
    assert format_timestamp(datetime(2024, 3, 1, 10, 0)) == "2024-03-01T10:00:00Z"


def test_watch_metrics():
    """Test creating WatchMetrics."""
    metrics = WatchMetrics(
        repositories_watched=2,
        issues_fetched=10,
        issues_notified=3,
        duration_seconds=1.5,
        results_returned=True,
    )

    assert metrics.repositories_watched == 2
    assert metrics.issues_fetched == 10
    assert metrics.issues_notified == 3
    assert metrics.results_returned is True
