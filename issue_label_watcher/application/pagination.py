"""Multi-cursor pagination engine for batched GraphQL queries.

The engine is a small state machine. Every transition is performed by
``PaginationEngine.step``, which takes the current ``PaginationState`` and
returns the next one, so a single iteration can be exercised in isolation.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from issue_label_watcher.application.query_composer import ComposedQuery, MAX_PAGE_SIZE
from issue_label_watcher.application.watch_plan import WatchStream
from issue_label_watcher.domain.github_interface import (
    IGitHubClient,
    TransientUpstreamError,
    UpstreamError,
    UpstreamQueryError,
)
from issue_label_watcher.domain.models import RateLimitBudget, StreamCursor, StreamKey
from issue_label_watcher.domain.rate_limit import can_proceed, parse_rate_limit


logger = logging.getLogger(__name__)

PAGE_SIZE_FLOOR = 5
PAGE_SIZE_STEP = 5
BACKOFF_SECONDS = 10.0

# Receives one page of nodes for a stream; returning False closes the stream
# even if the upstream reports more pages.
StreamConsumer = Callable[[WatchStream, List[Dict[str, Any]]], bool]


class PaginationPhase(str, Enum):
    PROBING = "probing"
    FETCHING = "fetching"
    DEGRADING = "degrading"
    DONE = "done"


class PaginationOutcome(str, Enum):
    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    DEGRADED = "degraded"
    QUERY_ERROR = "query_error"
    PROBE_FAILED = "probe_failed"
    STALLED = "stalled"


@dataclass(frozen=True)
class PaginationState:
    """Explicit state threaded through the pagination loop."""
    phase: PaginationPhase
    page_size: int
    cursors: Dict[StreamKey, StreamCursor] = field(default_factory=dict)
    budget: Optional[RateLimitBudget] = None
    rounds: int = 0
    outcome: Optional[PaginationOutcome] = None
    error: Optional[str] = None

    @classmethod
    def initial(cls, query: ComposedQuery, page_size: int) -> 'PaginationState':
        return cls(
            phase=PaginationPhase.PROBING,
            page_size=max(PAGE_SIZE_FLOOR, min(page_size, MAX_PAGE_SIZE)),
            cursors=query.initial_cursors(),
        )

    @property
    def has_more(self) -> bool:
        return any(cursor.include for cursor in self.cursors.values())

    def finish(self, outcome: PaginationOutcome, error: Optional[str] = None) -> 'PaginationState':
        return replace(self, phase=PaginationPhase.DONE, outcome=outcome, error=error)


@dataclass(frozen=True)
class PaginationResult:
    """Summary of a finished pagination run."""
    outcome: PaginationOutcome
    rounds: int
    page_size: int
    budget: Optional[RateLimitBudget]
    error: Optional[str] = None

    @property
    def fetched_any(self) -> bool:
        """True when at least one data round-trip succeeded."""
        return self.rounds > 0

    @property
    def completed(self) -> bool:
        return self.outcome is PaginationOutcome.COMPLETED


class PaginationEngine:
    """Drives a composed query until no stream has more pages.

    Only one request is in flight at a time; every stream is folded into the
    same round-trip.
    """

    def __init__(
        self,
        github_client: IGitHubClient,
        page_size_floor: int = PAGE_SIZE_FLOOR,
        page_size_step: int = PAGE_SIZE_STEP,
        backoff_seconds: float = BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize pagination engine.

        Args:
            github_client: GitHub GraphQL client implementation
            page_size_floor: Smallest page size used under degradation
            page_size_step: Amount the page size shrinks after a transient failure
            backoff_seconds: Wait before retrying after a transient failure
            sleep: Awaitable sleep function (injectable for tests)
        """
        self._github_client = github_client
        self._page_size_floor = page_size_floor
        self._page_size_step = page_size_step
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def run(self, query: ComposedQuery, consumer: StreamConsumer, page_size: int) -> PaginationResult:
        """Run the state machine from probing to done."""
        state = PaginationState.initial(query, page_size)
        logger.debug(query.text)

        while state.phase is not PaginationPhase.DONE:
            state = await self.step(query, state, consumer)

        logger.info(
            f"Pagination finished: outcome={state.outcome.value} rounds={state.rounds} "
            f"page_size={state.page_size}"
        )
        return PaginationResult(
            outcome=state.outcome,
            rounds=state.rounds,
            page_size=state.page_size,
            budget=state.budget,
            error=state.error,
        )

    async def step(self, query: ComposedQuery, state: PaginationState, consumer: StreamConsumer) -> PaginationState:
        """Perform exactly one state transition."""
        if state.phase is PaginationPhase.PROBING:
            return await self._probe(query, state)
        if state.phase is PaginationPhase.FETCHING:
            return await self._fetch(query, state, consumer)
        if state.phase is PaginationPhase.DEGRADING:
            await self._sleep(self._backoff_seconds)
            # A failed dry run leaves no budget behind and is probed again.
            resume = PaginationPhase.FETCHING if state.budget is not None else PaginationPhase.PROBING
            return replace(state, phase=resume)
        return state

    async def _probe(self, query: ComposedQuery, state: PaginationState) -> PaginationState:
        try:
            data = await self._send(query, state, dry_run=True)
            budget = parse_rate_limit(data.get("rateLimit"))
        except TransientUpstreamError as e:
            return self._degrade(state, e, PaginationOutcome.PROBE_FAILED)
        except UpstreamQueryError as e:
            _log_query_errors(e)
            return state.finish(PaginationOutcome.PROBE_FAILED, str(e))
        except (UpstreamError, ValueError) as e:
            logger.error(f"Dry run request failed: {e}")
            return state.finish(PaginationOutcome.PROBE_FAILED, str(e))

        logger.info(f"Dry run cost {budget.cost}, remaining {budget.remaining}")
        return replace(state, phase=PaginationPhase.FETCHING, budget=budget)

    async def _fetch(self, query: ComposedQuery, state: PaginationState, consumer: StreamConsumer) -> PaginationState:
        if state.budget is None or not can_proceed(state.budget):
            _log_budget_exhausted(state.budget)
            return state.finish(PaginationOutcome.BUDGET_EXHAUSTED)

        try:
            data = await self._send(query, state, dry_run=False)
        except TransientUpstreamError as e:
            return self._degrade(state, e)
        except UpstreamQueryError as e:
            _log_query_errors(e)
            return state.finish(PaginationOutcome.QUERY_ERROR, str(e))
        except UpstreamError as e:
            logger.error(f"Request failed: {e}")
            return state.finish(PaginationOutcome.QUERY_ERROR, str(e))

        try:
            budget = parse_rate_limit(data.get("rateLimit"))
        except ValueError as e:
            logger.error(str(e))
            return state.finish(PaginationOutcome.QUERY_ERROR, str(e))
        logger.debug(f"Rate limit {budget}")

        cursors = self._route(query, state, data, consumer)
        advanced = replace(state, budget=budget, cursors=cursors, rounds=state.rounds + 1)

        if not advanced.has_more:
            return advanced.finish(PaginationOutcome.COMPLETED)
        if cursors == state.cursors:
            message = "Detected pagination stall: no stream advanced in a full round-trip"
            logger.error(message)
            return advanced.finish(PaginationOutcome.STALLED, message)
        return advanced

    def _degrade(
        self,
        state: PaginationState,
        error: TransientUpstreamError,
        floor_outcome: PaginationOutcome = PaginationOutcome.DEGRADED,
    ) -> PaginationState:
        if state.page_size <= self._page_size_floor:
            message = f"Query still failing ({error.status_code}) at minimum page size {state.page_size}"
            logger.error(message)
            return state.finish(floor_outcome, message)

        page_size = max(self._page_size_floor, state.page_size - self._page_size_step)
        logger.warning(
            f"Query seems to have timed out ({error.status_code}), "
            f"trying with smaller page size ({page_size})..."
        )
        return replace(state, phase=PaginationPhase.DEGRADING, page_size=page_size)

    def _route(
        self,
        query: ComposedQuery,
        state: PaginationState,
        data: Dict[str, Any],
        consumer: StreamConsumer,
    ) -> Dict[StreamKey, StreamCursor]:
        """Hand each stream its page and derive the next cursor state."""
        cursors = dict(state.cursors)
        for stream in query.streams:
            previous = state.cursors[stream.key]
            if not previous.include:
                continue

            repository_data = data.get(stream.repository_alias) or {}
            connection = repository_data.get(stream.alias)
            if connection is None:
                logger.warning(f"No data returned for stream '{stream.alias}', closing it")
                cursors[stream.key] = StreamCursor(after=previous.after, include=False)
                continue

            page_info = connection.get("pageInfo") or {}
            accepted = consumer(stream, connection.get("nodes") or [])
            cursors[stream.key] = StreamCursor(
                after=page_info.get("endCursor"),
                include=bool(page_info.get("hasNextPage")) and accepted,
            )
        return cursors

    async def _send(self, query: ComposedQuery, state: PaginationState, dry_run: bool) -> Dict[str, Any]:
        variables = query.variables(state.cursors, state.page_size, dry_run)
        logger.debug(json.dumps(variables))
        return await self._github_client.execute(query.text, variables)


def _log_budget_exhausted(budget: Optional[RateLimitBudget]) -> None:
    if budget is None:
        logger.warning("Rate limit unknown, not sending the query")
        return
    logger.warning(
        f"Rate limit reached: cost={budget.cost} remaining={budget.remaining} "
        f"limit={budget.limit} reset_at={budget.reset_at}"
    )


def _log_query_errors(error: UpstreamQueryError) -> None:
    logger.error("\n".join(json.dumps(e, indent=2, default=str) for e in error.errors))
