"""Domain models representing core business entities."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple


@dataclass(frozen=True)
class WatchedRepository:
    """Immutable domain entity representing a repository under watch.

    Rebuilt from settings at process start; never mutated during a run.
    """
    owner: str
    name: str
    labels: Tuple[str, ...] = ()
    watch_pinned: bool = False
    watch_pull_requests: bool = False

    @property
    def full_name(self) -> str:
        """Returns the full repository name (owner/name)."""
        return f"{self.owner}/{self.name}"


class StreamKind(str, Enum):
    """Kinds of pageable sub-queries."""
    ISSUES = "issues"
    PULL_REQUESTS = "pull_requests"
    PINNED = "pinned"
    LABELS = "labels"


@dataclass(frozen=True)
class StreamKey:
    """Stable identity of one pageable stream within a run."""
    repository: str
    kind: StreamKind
    label: Optional[str] = None


@dataclass(frozen=True)
class StreamCursor:
    """Continuation state of one stream."""
    after: Optional[str] = None
    include: bool = True


@dataclass(frozen=True)
class RateLimitBudget:
    """GitHub GraphQL cost budget as reported by the rateLimit field."""
    cost: int
    remaining: int
    reset_at: Optional[datetime] = None
    limit: int = 0
    used: int = 0
    node_count: int = 0


class IssueKind(str, Enum):
    """Kind of a reported item."""
    ISSUE = "Issue"
    PULL_REQUEST = "PR"
    PINNED = "Pinned"


@dataclass
class IssueRecord:
    """One label-matching issue, pull request or pinned issue.

    ``already_viewed`` is set by the notification state engine.
    """
    repository: WatchedRepository
    number: str
    kind: IssueKind
    status: str
    title: str
    labels: List[str]
    updated_at: datetime
    url: str
    already_viewed: bool = False


@dataclass(frozen=True)
class IssuesByRepository:
    """Aggregated records for a single repository."""
    repository: WatchedRepository
    issues: Tuple[IssueRecord, ...]


@dataclass
class PersistedState:
    """Cross-run state: last run time and the issue numbers already notified.

    Repository keys are matched case-insensitively; the first spelling seen is
    the one stored.
    """
    last_run_time: Optional[datetime] = None
    issues_by_repo: Dict[str, Set[str]] = field(default_factory=dict)

    def seen_issues(self, full_name: str) -> Set[str]:
        """Returns the seen-set for a repository, creating it if needed."""
        for key, numbers in self.issues_by_repo.items():
            if key.lower() == full_name.lower():
                return numbers
        numbers: Set[str] = set()
        self.issues_by_repo[full_name] = numbers
        return numbers

    @property
    def total_issues(self) -> int:
        return sum(len(numbers) for numbers in self.issues_by_repo.values())

    def to_document(self) -> dict:
        """Serialize to the persisted JSON document shape."""
        return {
            "lastRunTime": format_timestamp(self.last_run_time) if self.last_run_time else None,
            "repos": [
                {"fullName": full_name, "issueNumbers": sorted(numbers)}
                for full_name, numbers in self.issues_by_repo.items()
            ],
        }

    @classmethod
    def from_document(cls, document: dict) -> 'PersistedState':
        """Build state from a persisted JSON document."""
        state = cls()
        last_run_time = document.get("lastRunTime")
        if last_run_time:
            state.last_run_time = parse_timestamp(last_run_time)
        for repo in document.get("repos") or []:
            full_name = repo.get("fullName")
            if full_name is None:
                continue
            state.seen_issues(full_name).update(repo.get("issueNumbers") or [])
        return state


@dataclass(frozen=True)
class Notification:
    """A rendered notification ready to hand to a notifier."""
    subject: str
    html_body: str
    issue_count: int


@dataclass(frozen=True)
class WatchMetrics:
    """Metrics for a watch run."""
    repositories_watched: int
    issues_fetched: int
    issues_notified: int
    duration_seconds: float
    results_returned: bool


def parse_timestamp(value: str) -> datetime:
    """Parse a GitHub ISO 8601 timestamp into an aware datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format an aware datetime the way GitHub's DateTime scalar expects."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
