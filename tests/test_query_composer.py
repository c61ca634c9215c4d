"""Tests for GraphQL query composition."""
from datetime import datetime, timezone
from issue_label_watcher.application.query_composer import (
    EnumValue,
    QueryDocument,
    Variable,
    VariableDefinition,
    compose_issue_query,
    compose_label_query,
    rate_limit_field,
    render_document,
    render_value,
)
from issue_label_watcher.application.watch_plan import build_discovery_plan, build_watch_plan
from issue_label_watcher.domain.models import StreamCursor, WatchedRepository


def _plan(**flags):
    repo = WatchedRepository("o", "n", labels=("bug",), **flags)
    return build_watch_plan([repo], {"o/n": ["bug"]})


def test_render_document():
    """Test the serializer output for a minimal document."""
    document = QueryDocument(
        operation_name="Q",
        variables=(VariableDefinition("dryRun", "Boolean!"),),
        selections=(rate_limit_field(),),
    )

    assert render_document(document) == (
        "query Q($dryRun: Boolean!) {\n"
        "  rateLimit(dryRun: $dryRun) {\n"
        "    cost\n"
        "    limit\n"
        "    nodeCount\n"
        "    remaining\n"
        "    resetAt\n"
        "    used\n"
        "  }\n"
        "}\n"
    )


def test_render_value():
    """Test rendering of argument literals."""
    assert render_value(Variable("after")) == "$after"
    assert render_value(EnumValue("OPEN")) == "OPEN"
    assert render_value('say "hi"') == '"say \\"hi\\""'
    assert render_value(None) == "null"
    assert render_value(True) == "true"
    assert render_value({"labels": ["bug"], "first": 5}) == '{labels: ["bug"], first: 5}'


def test_issue_query_stream_field():
    """Test an issues stream is aliased, filtered and guarded by its include flag."""
    query = compose_issue_query(_plan(), since=None, label_page_size=10)

    assert query.text.startswith(
        "query IssuesWithLabel($dryRun: Boolean!, $since: DateTime, $pageSize: Int!, "
        "$after_repo_o_n_issue_bug: String, $include_repo_o_n_issue_bug: Boolean!) {"
    )
    assert 'repo_o_n: repository(owner: "o", name: "n") {' in query.text
    assert (
        'repo_o_n_issue_bug: issues(filterBy: {labels: ["bug"], states: [OPEN, CLOSED], since: $since}, '
        "first: $pageSize, after: $after_repo_o_n_issue_bug, orderBy: {field: UPDATED_AT, direction: DESC}) "
        "@include(if: $include_repo_o_n_issue_bug) {"
    ) in query.text
    assert "typeName: __typename" in query.text
    assert "labels(first: 10) {" in query.text


def test_issue_query_declares_only_used_fragments():
    """Test that fragments for stream kinds not in the plan are left out."""
    issues_only = compose_issue_query(_plan(), since=None, label_page_size=10).text
    everything = compose_issue_query(
        _plan(watch_pinned=True, watch_pull_requests=True), since=None, label_page_size=10).text

    assert "fragment issueFields on Issue" in issues_only
    assert "fragment issueConnectionFields on IssueConnection" in issues_only
    assert "prFields" not in issues_only
    assert "pinnedIssueConnectionFields" not in issues_only

    assert "fragment prConnectionFields on PullRequestConnection" in everything
    assert "fragment pinnedIssueConnectionFields on PinnedIssueConnection" in everything
    assert "pullRequests(labels: [\"bug\"], states: [OPEN, CLOSED, MERGED]" in everything
    assert "pinnedIssues(first: $pageSize, after: $after_repo_o_n_pinned)" in everything


def test_issue_query_variables():
    """Test variables carry since, page size and per-stream cursors."""
    since = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    query = compose_issue_query(_plan(watch_pull_requests=True), since=since, label_page_size=10)
    issue_stream, pr_stream = query.streams
    cursors = query.initial_cursors()
    cursors[pr_stream.key] = StreamCursor(after="abc", include=False)

    variables = query.variables(cursors, page_size=25, dry_run=True)

    assert variables == {
        "dryRun": True,
        "pageSize": 25,
        "since": "2024-01-02T03:04:05Z",
        "after_repo_o_n_issue_bug": None,
        "include_repo_o_n_issue_bug": True,
        "after_repo_o_n_pr_bug": "abc",
        "include_repo_o_n_pr_bug": False,
    }


def test_issue_query_without_since():
    """Test full history mode sends a null since bound."""
    query = compose_issue_query(_plan(), since=None, label_page_size=10)

    assert query.variables(query.initial_cursors(), 10, False)["since"] is None


def test_pinned_only_query_has_no_since_variable():
    """Test a plan without issue streams neither declares nor sends since."""
    repo = WatchedRepository("o", "n", watch_pinned=True)
    plan = build_watch_plan([repo], {"o/n": []})
    since = datetime(2024, 1, 2, tzinfo=timezone.utc)

    query = compose_issue_query(plan, since=since, label_page_size=10)

    assert query.text.startswith(
        "query IssuesWithLabel($dryRun: Boolean!, $pageSize: Int!, "
        "$after_repo_o_n_pinned: String, $include_repo_o_n_pinned: Boolean!) {"
    )
    assert "since" not in query.text
    assert "since" not in query.variables(query.initial_cursors(), 10, True)
    assert "fragment pinnedIssueConnectionFields on PinnedIssueConnection" in query.text


def test_label_query():
    """Test the label discovery query."""
    plan = build_discovery_plan([WatchedRepository("o", "n")])

    query = compose_label_query(plan)

    assert query.text.startswith("query Labels($dryRun: Boolean!, $pageSize: Int!, ")
    assert (
        "repo_o_n_labels: labels(first: $pageSize, after: $after_repo_o_n_labels) "
        "@include(if: $include_repo_o_n_labels) {"
    ) in query.text
    assert "since" not in query.variables(query.initial_cursors(), 100, True)
    assert "fragment" not in query.text
