"""Fetches the remaining label pages of issues with many labels."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from issue_label_watcher.application.aggregator import AggregatedIssue, IssueAggregator
from issue_label_watcher.application.query_composer import (
    QueryDocument,
    VariableDefinition,
    field,
    label_names_field,
    rate_limit_field,
    render_document,
    repository_field,
)
from issue_label_watcher.application.watch_plan import AliasAllocator
from issue_label_watcher.domain.github_interface import (
    IGitHubClient,
    TransientUpstreamError,
    UpstreamError,
)
from issue_label_watcher.domain.models import RateLimitBudget
from issue_label_watcher.domain.rate_limit import can_proceed, parse_rate_limit


logger = logging.getLogger(__name__)

# (repository alias, {item alias: issue}) for each repository in one request
Routes = List[Tuple[str, Dict[str, AggregatedIssue]]]


class LabelCompletion:
    """Batches per-issue label queries until every record has all its labels."""

    def __init__(
        self,
        github_client: IGitHubClient,
        label_page_size: int,
        max_items: int,
        item_step: int,
        backoff_seconds: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize label completion.

        Args:
            github_client: GitHub GraphQL client implementation
            label_page_size: Labels requested per issue per round-trip
            max_items: Issues included in one request
            item_step: Amount max_items shrinks after a transient failure
            backoff_seconds: Wait before retrying after a transient failure
            sleep: Awaitable sleep function (injectable for tests)
        """
        self._github_client = github_client
        self._label_page_size = label_page_size
        self._max_items = max_items
        self._item_step = item_step
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def complete(self, aggregator: IssueAggregator) -> bool:
        """Fetch label pages until none are pending.

        Returns:
            True when every pending label page was fetched
        """
        max_items = self._max_items
        budget: Optional[RateLimitBudget] = None

        while True:
            pending = {k: v for k, v in aggregator.pending_label_pages().items() if v}
            if not pending:
                return True

            text, routes = self._compose(pending, max_items)
            logger.debug(text)

            try:
                if budget is None:
                    data = await self._github_client.execute(text, {"dryRun": True})
                    budget = parse_rate_limit(data.get("rateLimit"))
                if not can_proceed(budget):
                    logger.warning(
                        "Rate limit reached while fetching issue labels: "
                        f"cost={budget.cost} remaining={budget.remaining} reset_at={budget.reset_at}"
                    )
                    return False
                data = await self._github_client.execute(text, {"dryRun": False})
                budget = parse_rate_limit(data.get("rateLimit"))
            except TransientUpstreamError as e:
                if max_items <= self._item_step:
                    logger.error(f"Issue labels query still failing ({e.status_code}) with {max_items} issues")
                    return False
                max_items -= self._item_step
                logger.warning(
                    f"Issue labels query seems to have timed out ({e.status_code}), "
                    f"trying with fewer issues ({max_items})..."
                )
                await self._sleep(self._backoff_seconds)
                continue
            except (UpstreamError, ValueError) as e:
                logger.error(f"Issue labels query failed: {e}")
                return False

            if self._apply(data, routes) == 0:
                logger.error("Detected infinite loop while fetching issue labels")
                return False

    def _compose(self, pending: Dict[str, List[AggregatedIssue]], max_items: int) -> Tuple[str, Routes]:
        allocator = AliasAllocator()
        remaining = max_items
        selections: List[Any] = [rate_limit_field()]
        routes: Routes = []

        for issues in pending.values():
            if remaining == 0:
                break
            repository = issues[0].record.repository
            repo_alias = allocator.allocate(f"repo_{repository.owner}_{repository.name}")
            items: Dict[str, AggregatedIssue] = {}
            children = []
            for issue in issues[:remaining]:
                alias = f"i{issue.record.number}"
                items[alias] = issue
                children.append(field(
                    "pullRequest" if issue.is_pull_request else "issue",
                    label_names_field(self._label_page_size, issue.label_cursor),
                    alias=alias,
                    arguments={"number": int(issue.record.number)},
                ))
            remaining -= len(items)
            selections.append(repository_field(repo_alias, repository.owner, repository.name, children))
            routes.append((repo_alias, items))

        document = QueryDocument(
            operation_name="IssueLabels",
            variables=(VariableDefinition("dryRun", "Boolean!"),),
            selections=tuple(selections),
        )
        return render_document(document), routes

    def _apply(self, data: Dict[str, Any], routes: Routes) -> int:
        processed = 0
        for repo_alias, items in routes:
            repository_data = data.get(repo_alias) or {}
            for alias, issue in items.items():
                labels = (repository_data.get(alias) or {}).get("labels")
                if labels is None:
                    continue

                issue.record.labels.extend(n["name"] for n in labels.get("nodes") or [] if n.get("name"))
                page_info = labels.get("pageInfo") or {}
                end_cursor = page_info.get("endCursor")
                if page_info.get("hasNextPage") and end_cursor and end_cursor != issue.label_cursor:
                    issue.label_cursor = end_cursor
                else:
                    issue.has_more_labels = False
                processed += 1
        return processed
