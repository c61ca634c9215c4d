"""Tests for issue aggregation."""
from datetime import datetime, timezone
from issue_label_watcher.application.aggregator import IssueAggregator
from issue_label_watcher.application.watch_plan import build_watch_plan
from issue_label_watcher.domain.models import IssueKind, StreamKind, WatchedRepository
from fakes import issue_node

REPO = WatchedRepository("o", "n", labels=("bug",), watch_pinned=True, watch_pull_requests=True)
OTHER = WatchedRepository("x", "y", labels=("bug",))


def _streams():
    plan = build_watch_plan([REPO, OTHER], {"o/n": ["bug"], "x/y": ["bug"]})
    return {(s.repository.full_name, s.kind): s for s in plan.streams}


def test_pull_request_stream_stops_at_since():
    """Test that pull requests at or before since close the stream."""
    streams = _streams()
    since = datetime(2024, 1, 10, tzinfo=timezone.utc)
    aggregator = IssueAggregator([REPO, OTHER], since)

    accepted = aggregator.accept(streams[("o/n", StreamKind.PULL_REQUESTS)], [
        issue_node(4, "2024-01-12T00:00:00Z", typename="PullRequest"),
        issue_node(3, "2024-01-11T00:00:00Z", typename="PullRequest"),
        issue_node(2, "2024-01-10T00:00:00Z", typename="PullRequest"),
        issue_node(1, "2024-01-09T00:00:00Z", typename="PullRequest"),
    ])

    assert accepted is False
    issues = aggregator.results()[0].issues
    assert [i.number for i in issues] == ["4", "3"]
    assert all(i.kind is IssueKind.PULL_REQUEST for i in issues)
    assert issues[0].url == "https://github.com/o/n/pull/4"


def test_pull_request_stream_without_since_accepts_everything():
    """Test full history mode never cuts pull requests off."""
    streams = _streams()
    aggregator = IssueAggregator([REPO, OTHER], since=None)

    accepted = aggregator.accept(streams[("o/n", StreamKind.PULL_REQUESTS)], [
        issue_node(1, "2020-01-01T00:00:00Z", typename="PullRequest", state="MERGED"),
    ])

    assert accepted is True
    assert aggregator.results()[0].issues[0].status == "MERGED"


def test_pinned_nodes_are_unwrapped_and_first_record_wins():
    """Test a pinned issue also returned by a label stream is kept once."""
    streams = _streams()
    aggregator = IssueAggregator([REPO, OTHER], since=None)

    aggregator.accept(streams[("o/n", StreamKind.PINNED)], [
        {"issue": issue_node(7, "2024-01-01T00:00:00Z", labels=(), title="Roadmap")},
        {"issue": None},
    ])
    aggregator.accept(streams[("o/n", StreamKind.ISSUES)], [
        issue_node(7, "2024-01-01T00:00:00Z"),
        issue_node(8, "2024-01-02T00:00:00Z", state="CLOSED"),
    ])

    issues = aggregator.results()[0].issues
    assert [(i.number, i.kind) for i in issues] == [("7", IssueKind.PINNED), ("8", IssueKind.ISSUE)]
    assert issues[0].title == "Roadmap"
    assert issues[1].status == "CLOSED"
    assert aggregator.issue_count == 2


def test_same_number_in_other_repository_is_kept():
    """Test dedup is per repository."""
    streams = _streams()
    aggregator = IssueAggregator([REPO, OTHER], since=None)

    aggregator.accept(streams[("o/n", StreamKind.ISSUES)], [issue_node(1, "2024-01-01T00:00:00Z")])
    aggregator.accept(streams[("x/y", StreamKind.ISSUES)], [issue_node(1, "2024-01-01T00:00:00Z")])

    results = aggregator.results()
    assert [r.repository.full_name for r in results] == ["o/n", "x/y"]
    assert [len(r.issues) for r in results] == [1, 1]


def test_pending_label_pages():
    """Test only issues with a further label page and a cursor are pending."""
    streams = _streams()
    aggregator = IssueAggregator([REPO, OTHER], since=None)

    aggregator.accept(streams[("o/n", StreamKind.ISSUES)], [
        issue_node(1, "2024-01-01T00:00:00Z", label_cursor="c1", more_labels=True),
        issue_node(2, "2024-01-01T00:00:00Z", label_cursor=None, more_labels=True),
        issue_node(3, "2024-01-01T00:00:00Z"),
    ])

    pending = aggregator.pending_label_pages()
    assert [i.record.number for i in pending["o/n"]] == ["1"]
    assert pending["o/n"][0].label_cursor == "c1"
    assert pending["x/y"] == []
