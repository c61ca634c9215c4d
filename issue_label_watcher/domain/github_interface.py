"""GitHub API interface (port) for executing GraphQL documents.

This is the anti-corruption layer that shields the domain from GitHub API specifics.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class UpstreamError(Exception):
    """Base class for failures reported by the upstream API."""
    pass


class TransientUpstreamError(UpstreamError):
    """Gateway or timeout class failure; the same request may succeed later."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamQueryError(UpstreamError):
    """The upstream rejected the query (malformed, permission, not found)."""

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__("; ".join(str(error.get("message", error)) for error in errors))
        self.errors = errors


class RateLimitException(UpstreamError):
    """Exception raised when a secondary rate limit is hit."""
    pass


class IGitHubClient(ABC):
    """Abstract interface for GitHub GraphQL operations."""

    @abstractmethod
    async def execute(self, document: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Execute one GraphQL document.

        Args:
            document: GraphQL query text
            variables: JSON variable object

        Returns:
            The response ``data`` object

        Raises:
            TransientUpstreamError: On gateway errors and timeouts
            UpstreamQueryError: When the response carries GraphQL errors
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
