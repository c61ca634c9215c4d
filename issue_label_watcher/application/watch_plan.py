"""Watch plan building: expands watched repositories into pageable streams."""
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from issue_label_watcher.domain.models import StreamKey, StreamKind, WatchedRepository


logger = logging.getLogger(__name__)

_INVALID_ALIAS_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_alias(value: str) -> str:
    """Map a name onto the GraphQL name alphabet."""
    return _INVALID_ALIAS_CHARS.sub("_", value)


class AliasAllocator:
    """Hands out unique GraphQL aliases for one query.

    Names that collide after sanitization get a numeric suffix, in allocation
    order, so the result is deterministic for a given configuration.
    """

    def __init__(self):
        self._used: Set[str] = set()

    def allocate(self, base: str) -> str:
        candidate = sanitize_alias(base)
        alias = candidate
        suffix = 2
        while alias in self._used:
            alias = f"{candidate}_{suffix}"
            suffix += 1
        self._used.add(alias)
        return alias


@dataclass(frozen=True)
class WatchStream:
    """One pageable stream bound to its aliases in the composed query."""
    key: StreamKey
    repository: WatchedRepository
    repository_alias: str
    alias: str

    @property
    def kind(self) -> StreamKind:
        return self.key.kind

    @property
    def label(self) -> Optional[str]:
        return self.key.label

    @property
    def after_variable(self) -> str:
        return f"after_{self.alias}"

    @property
    def include_variable(self) -> str:
        return f"include_{self.alias}"


@dataclass(frozen=True)
class WatchPlan:
    """Ordered set of streams covering every watched repository."""
    repositories: Tuple[WatchedRepository, ...]
    repository_aliases: Tuple[str, ...]
    streams: Tuple[WatchStream, ...]

    def streams_for(self, repository: WatchedRepository) -> List[WatchStream]:
        return [s for s in self.streams if s.repository.full_name == repository.full_name]


def _repository_aliases(
    repositories: Sequence[WatchedRepository], allocator: AliasAllocator
) -> Tuple[str, ...]:
    return tuple(allocator.allocate(f"repo_{r.owner}_{r.name}") for r in repositories)


def build_discovery_plan(repositories: Sequence[WatchedRepository]) -> WatchPlan:
    """One label-listing stream per repository, used to resolve label names."""
    allocator = AliasAllocator()
    aliases = _repository_aliases(repositories, allocator)
    streams = tuple(
        WatchStream(
            key=StreamKey(repository.full_name, StreamKind.LABELS),
            repository=repository,
            repository_alias=repo_alias,
            alias=allocator.allocate(f"{repo_alias}_labels"),
        )
        for repository, repo_alias in zip(repositories, aliases)
    )
    return WatchPlan(tuple(repositories), aliases, streams)


def resolve_labels(repository: WatchedRepository, actual_labels: Iterable[str]) -> List[str]:
    """Resolve configured labels against the repository's real label names.

    Matching is case-insensitive. An exact match wins; otherwise the first
    case-insensitive match is used. Labels that do not exist are skipped.
    """
    by_lower: Dict[str, List[str]] = {}
    for name in actual_labels:
        by_lower.setdefault(name.lower(), []).append(name)

    resolved: List[str] = []
    for target in repository.labels:
        candidates = by_lower.get(target.lower(), [])
        if not candidates:
            logger.error(f"Label '{target}' in repo '{repository.full_name}' does not exist.")
            continue

        actual = target if target in candidates else candidates[0]
        if actual != target:
            logger.warning(
                f"Label '{target}' in repo '{repository.full_name}' is wrong case, "
                f"using '{actual}' ('{', '.join(candidates)}')"
            )
        if actual not in resolved:
            resolved.append(actual)
    return resolved


def build_watch_plan(
    repositories: Sequence[WatchedRepository],
    resolved_labels: Dict[str, List[str]],
) -> WatchPlan:
    """Expand repositories and their resolved labels into streams.

    Args:
        repositories: Watched repositories in configuration order
        resolved_labels: Real label names keyed by repository full name

    Returns:
        WatchPlan with pinned, issue and pull request streams per repository
    """
    allocator = AliasAllocator()
    aliases = _repository_aliases(repositories, allocator)
    streams: List[WatchStream] = []

    for repository, repo_alias in zip(repositories, aliases):
        full_name = repository.full_name
        if repository.watch_pinned:
            streams.append(WatchStream(
                key=StreamKey(full_name, StreamKind.PINNED),
                repository=repository,
                repository_alias=repo_alias,
                alias=allocator.allocate(f"{repo_alias}_pinned"),
            ))

        for label in resolved_labels.get(full_name, []):
            streams.append(WatchStream(
                key=StreamKey(full_name, StreamKind.ISSUES, label),
                repository=repository,
                repository_alias=repo_alias,
                alias=allocator.allocate(f"{repo_alias}_issue_{label}"),
            ))
            if repository.watch_pull_requests:
                streams.append(WatchStream(
                    key=StreamKey(full_name, StreamKind.PULL_REQUESTS, label),
                    repository=repository,
                    repository_alias=repo_alias,
                    alias=allocator.allocate(f"{repo_alias}_pr_{label}"),
                ))

    logger.info(f"Watch plan: {len(repositories)} repositories, {len(streams)} streams")
    return WatchPlan(tuple(repositories), aliases, tuple(streams))
