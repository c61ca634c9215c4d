"""GitHub GraphQL API client implementation with rate limiting and retry logic."""
import asyncio
import logging
from typing import Any, Dict, Optional
import aiohttp
from gql import gql, Client
from gql.client import AsyncClientSession
from gql.transport.aiohttp import AIOHTTPTransport
from gql.transport.exceptions import (
    TransportProtocolError,
    TransportQueryError,
    TransportServerError,
)
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)
from issue_label_watcher.domain.github_interface import (
    IGitHubClient,
    RateLimitException,
    TransientUpstreamError,
    UpstreamError,
    UpstreamQueryError,
)


logger = logging.getLogger(__name__)

GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
TRANSIENT_STATUS_CODES = (502, 504)


class GitHubGraphQLClient(IGitHubClient):
    """GitHub GraphQL API client with retry mechanisms.

    Implements the IGitHubClient port, providing an anti-corruption layer
    between the domain and GitHub's API. Transport failures are translated
    into the domain's upstream error types.
    """

    def __init__(
        self,
        access_token: str,
        user_agent: str,
        request_timeout: int = 60,
        url: str = GITHUB_GRAPHQL_URL,
    ):
        """Initialize GitHub client.

        Args:
            access_token: GitHub personal access token
            user_agent: User-Agent header sent with every request
            request_timeout: Seconds before a request counts as timed out
            url: GraphQL endpoint
        """
        self._access_token = access_token
        self._user_agent = user_agent
        self._request_timeout = request_timeout
        self._url = url
        self._transport: Optional[AIOHTTPTransport] = None
        self._client: Optional[Client] = None
        self._session: Optional[AsyncClientSession] = None

    async def _init_client(self) -> AsyncClientSession:
        """Initialize the GraphQL client (lazy initialization)."""
        if self._session is None:
            headers = {
                "Authorization": f"Bearer {self._access_token}",
                "User-Agent": self._user_agent,
            }
            self._transport = AIOHTTPTransport(
                url=self._url,
                headers=headers,
                timeout=self._request_timeout,
            )
            self._client = Client(
                transport=self._transport,
                fetch_schema_from_transport=False,
                execute_timeout=self._request_timeout,
            )
            self._session = await self._client.connect_async()
        return self._session

    @retry(
        retry=retry_if_exception_type((RateLimitException, aiohttp.ClientConnectionError)),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        reraise=True
    )
    async def _execute_query(self, document: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Execute GraphQL query with retry logic.

        Raises:
            RateLimitException: When a secondary rate limit is hit
        """
        session = await self._init_client()
        try:
            return await session.execute(gql(document), variable_values=variables)
        except TransportServerError as e:
            if e.code in (403, 429) and "rate limit" in str(e).lower():
                logger.warning(f"Secondary rate limit hit: {e}")
                raise RateLimitException(str(e))
            raise

    async def execute(self, document: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Execute one GraphQL document and return its data object.

        Raises:
            TransientUpstreamError: On 502/504 responses and timeouts
            UpstreamQueryError: When the response carries GraphQL errors
            UpstreamError: On any other transport failure
        """
        try:
            return await self._execute_query(document, variables)
        except TransportQueryError as e:
            raise UpstreamQueryError(list(e.errors or [{"message": str(e)}]))
        except TransportServerError as e:
            if e.code in TRANSIENT_STATUS_CODES:
                raise TransientUpstreamError(str(e), e.code)
            raise UpstreamError(f"GitHub returned HTTP {e.code}: {e}")
        except asyncio.TimeoutError:
            raise TransientUpstreamError(f"Request timed out after {self._request_timeout}s")
        except (TransportProtocolError, aiohttp.ClientError) as e:
            raise UpstreamError(f"Error executing GraphQL query: {e}")

    async def close(self) -> None:
        """Close the GraphQL client and transport."""
        if self._client and self._session:
            await self._client.close_async()
        self._session = None
        self._client = None
        self._transport = None
