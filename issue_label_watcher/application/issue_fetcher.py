"""Fetches label-matching issues and pull requests for all watched repositories."""
import logging
from datetime import datetime
from typing import List, Optional, Sequence
from issue_label_watcher.application.aggregator import IssueAggregator
from issue_label_watcher.application.label_completion import LabelCompletion
from issue_label_watcher.application.label_discovery import LabelDiscovery
from issue_label_watcher.application.pagination import PaginationEngine, PaginationOutcome
from issue_label_watcher.application.query_composer import compose_issue_query
from issue_label_watcher.application.watch_plan import build_watch_plan, resolve_labels
from issue_label_watcher.domain.models import IssuesByRepository, WatchedRepository


logger = logging.getLogger(__name__)


class IssueFetcher:
    """Runs discovery, planning, pagination, aggregation and label completion."""

    def __init__(
        self,
        engine: PaginationEngine,
        discovery: LabelDiscovery,
        label_completion: LabelCompletion,
        page_size: int = 10,
        label_page_size: int = 10,
    ):
        self._engine = engine
        self._discovery = discovery
        self._label_completion = label_completion
        self._page_size = page_size
        self._label_page_size = label_page_size

    async def fetch(
        self,
        repositories: Sequence[WatchedRepository],
        since: Optional[datetime],
    ) -> Optional[List[IssuesByRepository]]:
        """Fetch items updated after ``since`` (all items when None).

        Returns:
            Records per repository, possibly partial; None when nothing could
            be fetched (pre-flight failure or no rate-limit budget)
        """
        if not repositories:
            logger.warning("No repositories to watch")
            return []

        actual_labels = await self._discovery.discover(repositories)
        if actual_labels is None:
            return None

        resolved = {
            repository.full_name: resolve_labels(repository, actual_labels.get(repository.full_name, []))
            for repository in repositories
        }
        plan = build_watch_plan(repositories, resolved)
        aggregator = IssueAggregator(repositories, since)
        if not plan.streams:
            logger.warning("No streams to watch")
            return aggregator.results()

        query = compose_issue_query(plan, since, self._label_page_size)
        result = await self._engine.run(query, aggregator, self._page_size)

        if result.outcome is PaginationOutcome.PROBE_FAILED:
            return None
        if not result.fetched_any:
            logger.warning(f"Nothing fetched ({result.outcome.value})")
            return None
        if not result.completed:
            logger.warning(
                f"Returning partial results ({result.outcome.value}) with {aggregator.issue_count} issues"
            )

        await self._label_completion.complete(aggregator)
        return aggregator.results()
