"""Reconciles fetched issues against the persisted seen-sets."""
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple
from issue_label_watcher.domain.models import (
    IssueRecord,
    IssuesByRepository,
    PersistedState,
    WatchedRepository,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryDigest:
    """Records to report for one repository, newest first."""
    repository: WatchedRepository
    issues: Tuple[IssueRecord, ...]

    @property
    def new_issues(self) -> Tuple[IssueRecord, ...]:
        return tuple(issue for issue in self.issues if not issue.already_viewed)


class NotificationStateEngine:
    """Owns the persisted state for one run and decides what gets notified.

    Seen-sets only grow, so an issue number is never notified twice.
    """

    def __init__(self, state: PersistedState, include_already_viewed_in_email: bool = False):
        """Initialize the engine.

        Args:
            state: State loaded at the start of the run; mutated in place
            include_already_viewed_in_email: Also list previously notified
                issues (marked as viewed) next to new ones
        """
        self._state = state
        self._include_already_viewed = include_already_viewed_in_email

    def reconcile(self, results: Sequence[IssuesByRepository]) -> List[RepositoryDigest]:
        digests: List[RepositoryDigest] = []
        for issues_by_repo in results:
            seen = self._state.seen_issues(issues_by_repo.repository.full_name)

            reported: List[IssueRecord] = []
            for issue in issues_by_repo.issues:
                if issue.number in seen:
                    issue.already_viewed = True
                else:
                    seen.add(issue.number)

                if self._include_already_viewed or not issue.already_viewed:
                    reported.append(issue)

            if not any(not issue.already_viewed for issue in reported):
                continue

            reported.sort(key=lambda issue: issue.updated_at, reverse=True)
            digests.append(RepositoryDigest(issues_by_repo.repository, tuple(reported)))

        logger.info(
            f"Reconciled {sum(len(r.issues) for r in results)} issues, "
            f"{sum(len(d.new_issues) for d in digests)} new"
        )
        return digests
