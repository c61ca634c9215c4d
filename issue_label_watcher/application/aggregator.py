"""Aggregation of paged GraphQL nodes into issue records."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from issue_label_watcher.application.watch_plan import WatchStream
from issue_label_watcher.domain.models import (
    IssueKind,
    IssueRecord,
    IssuesByRepository,
    StreamKind,
    WatchedRepository,
    parse_timestamp,
)


logger = logging.getLogger(__name__)


@dataclass
class AggregatedIssue:
    """An issue record plus what is needed to fetch the rest of its labels."""
    record: IssueRecord
    is_pull_request: bool
    label_cursor: Optional[str] = None
    has_more_labels: bool = False


class IssueAggregator:
    """Collects records from every stream, one record per issue number per repository.

    Pull request streams are requested newest-first but cannot be filtered by
    recency upstream, so acceptance stops at the first node at or before
    ``since`` and the stream is closed.
    """

    def __init__(self, repositories: Sequence[WatchedRepository], since: Optional[datetime]):
        self._repositories = list(repositories)
        self._since = since
        self._issues_by_repo: Dict[str, Dict[str, AggregatedIssue]] = {
            repository.full_name: {} for repository in self._repositories
        }

    def __call__(self, stream: WatchStream, nodes: List[Dict[str, Any]]) -> bool:
        return self.accept(stream, nodes)

    def accept(self, stream: WatchStream, nodes: List[Dict[str, Any]]) -> bool:
        """Consume one page of a stream.

        Returns:
            False when the stream must not be paged any further
        """
        for node in nodes:
            if stream.kind is StreamKind.PINNED:
                node = node.get("issue") or {}
                if not node:
                    continue

            record = self._to_record(stream, node)
            if stream.kind is StreamKind.PULL_REQUESTS and self._since is not None \
                    and record.updated_at <= self._since:
                logger.debug(f"Stream '{stream.alias}' reached the since bound at #{record.number}")
                return False

            self._add(stream.repository, node, record)
        return True

    def _to_record(self, stream: WatchStream, node: Dict[str, Any]) -> IssueRecord:
        is_pull_request = node.get("typeName") == "PullRequest"
        if stream.kind is StreamKind.PINNED:
            kind = IssueKind.PINNED
        elif is_pull_request:
            kind = IssueKind.PULL_REQUEST
        else:
            kind = IssueKind.ISSUE

        labels = node.get("labels") or {}
        return IssueRecord(
            repository=stream.repository,
            number=str(node.get("number")),
            kind=kind,
            status=(node.get("pRState") if is_pull_request else node.get("issueState")) or "",
            title=node.get("title") or "",
            labels=[label["name"] for label in labels.get("nodes") or [] if label.get("name")],
            updated_at=parse_timestamp(node["updatedAt"]),
            url=node.get("url") or "",
        )

    def _add(self, repository: WatchedRepository, node: Dict[str, Any], record: IssueRecord) -> None:
        issues = self._issues_by_repo.setdefault(repository.full_name, {})
        if record.number in issues:
            return

        page_info = (node.get("labels") or {}).get("pageInfo") or {}
        issues[record.number] = AggregatedIssue(
            record=record,
            is_pull_request=node.get("typeName") == "PullRequest",
            label_cursor=page_info.get("endCursor"),
            has_more_labels=bool(page_info.get("hasNextPage")) and page_info.get("endCursor") is not None,
        )

    def pending_label_pages(self) -> Dict[str, List[AggregatedIssue]]:
        """Issues whose label list is still incomplete, keyed by repository full name."""
        return {
            full_name: [issue for issue in issues.values() if issue.has_more_labels]
            for full_name, issues in self._issues_by_repo.items()
        }

    @property
    def issue_count(self) -> int:
        return sum(len(issues) for issues in self._issues_by_repo.values())

    def results(self) -> List[IssuesByRepository]:
        """Records grouped per watched repository, in configuration order."""
        return [
            IssuesByRepository(
                repository=repository,
                issues=tuple(issue.record for issue in self._issues_by_repo[repository.full_name].values()),
            )
            for repository in self._repositories
        ]
