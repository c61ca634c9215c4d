"""Rate limit governance for the GraphQL cost budget."""
from typing import Any, Dict
from issue_label_watcher.domain.models import RateLimitBudget, parse_timestamp


def can_proceed(budget: RateLimitBudget) -> bool:
    """Admission check: a request may be sent only while its cost fits the budget."""
    return budget.cost < budget.remaining


def parse_rate_limit(payload: Dict[str, Any]) -> RateLimitBudget:
    """Build a budget from the upstream ``rateLimit`` object.

    Raises:
        ValueError: If the payload is missing
    """
    if not payload:
        raise ValueError("Response did not include a rateLimit object")
    reset_at = payload.get("resetAt")
    return RateLimitBudget(
        cost=int(payload.get("cost", 0)),
        remaining=int(payload.get("remaining", 0)),
        reset_at=parse_timestamp(reset_at) if reset_at else None,
        limit=int(payload.get("limit", 0)),
        used=int(payload.get("used", 0)),
        node_count=int(payload.get("nodeCount", 0)),
    )
