"""Watcher service orchestrating one label watch run."""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Tuple
from issue_label_watcher.application.email_renderer import render_notification
from issue_label_watcher.application.issue_fetcher import IssueFetcher
from issue_label_watcher.application.notification_state import NotificationStateEngine
from issue_label_watcher.domain.github_interface import IGitHubClient
from issue_label_watcher.domain.models import (
    IssuesByRepository,
    PersistedState,
    WatchedRepository,
    WatchMetrics,
)
from issue_label_watcher.domain.notifier_interface import INotifier
from issue_label_watcher.domain.state_interface import IStateStorage


logger = logging.getLogger(__name__)

FIRST_RUN_WINDOW = timedelta(days=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LabelWatcherService:
    """Application service for one watch run.

    Loads the persisted state once, fetches, reconciles, notifies and saves
    the state once. Follows single responsibility principle - only coordinates
    the run; every step lives in its own component.
    """

    def __init__(
        self,
        github_client: IGitHubClient,
        fetcher: IssueFetcher,
        storage: IStateStorage,
        notifier: INotifier,
        repositories: Sequence[WatchedRepository],
        version: str,
        include_already_viewed_in_email: bool = False,
        overlap: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize watcher service.

        Args:
            github_client: GitHub API client implementation
            fetcher: Issue fetcher driving the GraphQL queries
            storage: Persisted state storage implementation
            notifier: Notification delivery implementation
            repositories: Repositories to watch
            version: Version shown in notifications
            include_already_viewed_in_email: Dedup reporting policy
            overlap: How far before the last run recent mode looks back
            clock: Returns the current aware UTC time
        """
        self._github_client = github_client
        self._fetcher = fetcher
        self._storage = storage
        self._notifier = notifier
        self._repositories = list(repositories)
        self._version = version
        self._include_already_viewed = include_already_viewed_in_email
        self._overlap = overlap
        self._clock = clock

    async def find_and_notify_recent_labelled_issues(self) -> WatchMetrics:
        """Incremental mode: items updated since shortly before the last run."""
        def since_for(last_run_time: Optional[datetime]) -> datetime:
            if last_run_time is None:
                return self._clock() - FIRST_RUN_WINDOW
            return last_run_time - self._overlap

        return await self._run(since_for)

    async def find_and_notify_all_labelled_issues(self) -> WatchMetrics:
        """Full history mode."""
        return await self._run(lambda last_run_time: None)

    async def _run(self, since_for: Callable[[Optional[datetime]], Optional[datetime]]) -> WatchMetrics:
        start_time = time.time()
        if not self._storage.acquire_run_lock():
            logger.error("Another run holds the state lock, skipping this run")
            return WatchMetrics(len(self._repositories), 0, 0, time.time() - start_time, False)

        try:
            state = self._storage.load()
            since = since_for(state.last_run_time)
            state.last_run_time = self._clock()
            logger.info(f"Starting watch run for {len(self._repositories)} repositories since {since}")

            results = await self._fetcher.fetch(self._repositories, since)
            issues_fetched = 0
            issues_notified = 0
            delivered = True
            if results is None:
                logger.warning("No results returned.")
            else:
                issues_fetched = sum(len(r.issues) for r in results)
                issues_notified, delivered = self._notify(state, results)
                self._log_summary(results, include_viewed=since is not None)

            if delivered:
                self._storage.save(state)
            else:
                logger.error("Notification was not delivered; state not saved so the next run retries")
        finally:
            self._storage.release_run_lock()

        duration = time.time() - start_time
        metrics = WatchMetrics(
            repositories_watched=len(self._repositories),
            issues_fetched=issues_fetched,
            issues_notified=issues_notified,
            duration_seconds=duration,
            results_returned=results is not None,
        )
        logger.info(
            f"Watch run completed: {issues_fetched} issues fetched, "
            f"{issues_notified} notified in {duration:.2f} seconds"
        )
        return metrics

    def _notify(self, state: PersistedState, results: List[IssuesByRepository]) -> Tuple[int, bool]:
        """Reconcile, render and send.

        Returns:
            Number of issues notified and whether delivery succeeded
        """
        engine = NotificationStateEngine(state, self._include_already_viewed)
        digests = engine.reconcile(results)
        notification = render_notification(digests, self._version)
        if notification is None:
            return 0, True

        try:
            self._notifier.notify(notification.subject, notification.html_body)
        except Exception as e:
            logger.error(f"Error sending notification: {e}", exc_info=True)
            return 0, False
        return notification.issue_count, True

    def _log_summary(self, results: List[IssuesByRepository], include_viewed: bool) -> None:
        lines = []
        for issues_by_repo in results:
            relevant = [i for i in issues_by_repo.issues if include_viewed or not i.already_viewed]
            lines.append(f"{issues_by_repo.repository.full_name}: {len(relevant)}")
            for issue in relevant:
                lines.append(f"    {issue.number} {issue.status} {issue.kind.value} {issue.title}")
                lines.append(f"        {issue.url} {issue.already_viewed}")
        logger.info("\n".join(lines))

    async def close(self) -> None:
        """Close connections."""
        await self._github_client.close()
        self._storage.close()
