"""Label discovery: lists every repository's real labels before planning."""
import logging
from typing import Any, Dict, List, Optional, Sequence
from issue_label_watcher.application.pagination import PaginationEngine, PaginationOutcome
from issue_label_watcher.application.query_composer import compose_label_query
from issue_label_watcher.application.watch_plan import WatchStream, build_discovery_plan
from issue_label_watcher.domain.models import WatchedRepository


logger = logging.getLogger(__name__)


class LabelDiscovery:
    """Pages through ``repository.labels`` for all repositories in one batched query."""

    def __init__(self, engine: PaginationEngine, page_size: int = 100):
        self._engine = engine
        self._page_size = page_size

    async def discover(self, repositories: Sequence[WatchedRepository]) -> Optional[Dict[str, List[str]]]:
        """Collect label names per repository full name.

        Returns:
            Label names keyed by full name, or None if the pre-flight failed
        """
        if not repositories:
            return {}

        plan = build_discovery_plan(repositories)
        query = compose_label_query(plan)
        labels: Dict[str, List[str]] = {repository.full_name: [] for repository in repositories}

        def collect(stream: WatchStream, nodes: List[Dict[str, Any]]) -> bool:
            names = labels.setdefault(stream.repository.full_name, [])
            names.extend(node["name"] for node in nodes if node.get("name"))
            return True

        result = await self._engine.run(query, collect, self._page_size)
        if result.outcome in (PaginationOutcome.PROBE_FAILED, PaginationOutcome.QUERY_ERROR):
            logger.error(f"Label discovery failed: {result.error}")
            return None
        if not result.fetched_any:
            logger.warning(f"Label discovery fetched nothing ({result.outcome.value})")
            return None
        if not result.completed:
            logger.warning(f"Label discovery ended early ({result.outcome.value}); some labels may be missing")
        return labels
