import aiohttp, asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel
from tenacity import (
    retry,
    stop_after_attempt,
    retry_if_exception_type,
    RetryCallState,
)
from .rate_limiting import RateLimiter

logger = logging.getLogger(__name__)

GRAPHQL_ENDPOINT = "https://api.github.com/graphql"

# Small delay added *before* each request to ease request frequency
INTER_REQUEST_DELAY_SECONDS = 0.25
# Estimated cost acquired *before* the request, settled against rateLimit.cost
PRE_ACQUIRE_COST = 1
# Fallback wait when GitHub flags abuse without a Retry-After header
DEFAULT_ABUSE_WAIT_SECONDS = 60

T = TypeVar("T")


class Direction(str, Enum):
    FORWARD = "forward"  # first/after, first -> last
    BACKWARD = "backward"  # last/before, newest -> oldest


class Resource(str, Enum):
    OWNED_REPOSITORIES = "owned_repositories"
    STARGAZERS = "stargazers"
    COMMIT_HISTORY = "commit_history"


class RepositoryNode(BaseModel):
    owner: str
    name: str
    stargazer_count: int
    primary_language: Optional[str] = None


class StargazerEdge(BaseModel):
    login: str
    starred_at: datetime


class CommitNode(BaseModel):
    author_login: Optional[str] = None


class Page(BaseModel, Generic[T]):
    items: List[T]
    has_more: bool
    next_cursor: Optional[str] = None
    # cursor at the other end of the page (startCursor when paging forward)
    previous_cursor: Optional[str] = None
    total_count: Optional[int] = None
    login: Optional[str] = None
    cost: int = PRE_ACQUIRE_COST
    remaining: Optional[int] = None


class GithubResponseError(Exception):
    """The response does not carry the data the query asked for."""


class NoData(GithubResponseError):
    def __init__(self):
        super().__init__("The response has no data")


class EmptyNode(GithubResponseError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing expected node {field}")


class UnexpectedNode(GithubResponseError):
    def __init__(self, field: str, typename: str | None):
        self.field = field
        self.typename = typename
        super().__init__(f"Unexpected {typename} node at {field}")


class GithubAbuseRateLimitError(Exception):
    """Custom exception for GitHub abuse rate limit error."""

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(
            f"GitHub abuse rate limit hit. Retry after {retry_after} seconds."
        )


_PAGING_ARGS = "first: $first, after: $after, last: $last, before: $before"
_PAGING_VARS = "$first: Int, $after: String, $last: Int, $before: String"
_PAGE_INFO = "pageInfo { hasNextPage endCursor hasPreviousPage startCursor }"

OWNED_REPOSITORIES_QUERY = f"""
query ({_PAGING_VARS}) {{
  viewer {{
    login
    repositories(
      {_PAGING_ARGS}
      ownerAffiliations: [OWNER, ORGANIZATION_MEMBER, COLLABORATOR]
      orderBy: {{ field: STARGAZERS, direction: DESC }}
    ) {{
      totalCount
      {_PAGE_INFO}
      nodes {{
        name
        owner {{ login }}
        stargazerCount
        primaryLanguage {{ name }}
      }}
    }}
  }}
  rateLimit {{ cost remaining }}
}}"""

STARGAZERS_QUERY = f"""
query ($owner: String!, $name: String!, {_PAGING_VARS}) {{
  repository(owner: $owner, name: $name) {{
    stargazers({_PAGING_ARGS}) {{
      totalCount
      {_PAGE_INFO}
      edges {{
        starredAt
        node {{ login }}
      }}
    }}
  }}
  rateLimit {{ cost remaining }}
}}"""

COMMIT_HISTORY_QUERY = f"""
query ($owner: String!, $name: String!, {_PAGING_VARS}) {{
  repository(owner: $owner, name: $name) {{
    defaultBranchRef {{
      target {{
        __typename
        ... on Commit {{
          history({_PAGING_ARGS}) {{
            totalCount
            {_PAGE_INFO}
            nodes {{
              author {{ user {{ login }} }}
            }}
          }}
        }}
      }}
    }}
  }}
  rateLimit {{ cost remaining }}
}}"""


def _require(node: dict[str, Any] | None, field: str) -> Any:
    """Return ``node[field]`` or raise EmptyNode when it is absent or null."""
    value = node.get(field) if node else None
    if value is None:
        raise EmptyNode(field)
    return value


def _parse_repository(node: dict[str, Any]) -> RepositoryNode:
    language = node.get("primaryLanguage") or {}
    return RepositoryNode(
        owner=_require(node, "owner")["login"],
        name=node["name"],
        stargazer_count=node["stargazerCount"],
        primary_language=language.get("name"),
    )


def _parse_stargazer(edge: dict[str, Any]) -> StargazerEdge:
    return StargazerEdge(login=_require(edge, "node")["login"], starred_at=edge["starredAt"])


def _parse_commit(node: dict[str, Any]) -> CommitNode:
    user = (node.get("author") or {}).get("user") or {}
    return CommitNode(author_login=user.get("login"))


# --- Tenacity Callbacks ---
def log_retry(retry_state: RetryCallState):
    """Log retry attempts."""
    attempt = retry_state.attempt_number
    exception = retry_state.outcome.exception()
    wait_time = retry_state.next_action.sleep
    logger.warning(
        f"Retrying attempt {attempt} after exception {exception}. Waiting {wait_time:.2f}s."
    )


def wait_strategy(retry_state: RetryCallState) -> float:
    """Respect the Retry-After advertised by GitHub's abuse detection."""
    exception = retry_state.outcome.exception()
    return float(getattr(exception, "retry_after", DEFAULT_ABUSE_WAIT_SECONDS))


class GithubClient:
    """Minimal async wrapper around GitHub GraphQL, one page per call."""

    def __init__(
        self,
        token: str,
        *,
        endpoint: str = GRAPHQL_ENDPOINT,
        limiter: RateLimiter | None = None,
        request_delay: float = INTER_REQUEST_DELAY_SECONDS,
    ):
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": "starhistory",
        }
        self._endpoint = endpoint
        self._limiter = limiter
        self._request_delay = request_delay
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self):
        self._session = aiohttp.ClientSession(headers=self._headers)
        return self

    async def __aexit__(self, *exc):
        await self._session.close()  # type: ignore[arg‑type]

    @retry(
        stop=stop_after_attempt(5),
        wait=wait_strategy,
        retry=retry_if_exception_type(GithubAbuseRateLimitError),
        before_sleep=log_retry,
        reraise=True,
    )
    async def _post(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run one GraphQL query and return its ``data`` payload."""
        # --- Acquire estimated cost and apply delay BEFORE the request ---
        if self._limiter is not None:
            await self._limiter.acquire(PRE_ACQUIRE_COST)
        if self._request_delay:
            await asyncio.sleep(self._request_delay)

        payload = {"query": query, "variables": variables}
        async with self._session.post(self._endpoint, json=payload) as resp:  # type: ignore[union-attr]
            # --- Abuse Rate Limit Check ---
            if resp.status == 403:
                try:
                    body_text = str(await resp.json()).lower()
                except aiohttp.ContentTypeError:
                    body_text = (await resp.text()).lower()

                if "abuse" in body_text or "secondary rate limit" in body_text:
                    retry_after_header = resp.headers.get("Retry-After")
                    try:
                        wait_seconds = int(retry_after_header) if retry_after_header else DEFAULT_ABUSE_WAIT_SECONDS
                    except ValueError:
                        logger.error(f"Could not parse Retry-After header: {retry_after_header}")
                        wait_seconds = DEFAULT_ABUSE_WAIT_SECONDS
                    logger.warning(
                        f"GitHub abuse rate limit detected. Will retry after {wait_seconds} seconds."
                    )
                    raise GithubAbuseRateLimitError(retry_after=wait_seconds)

            # Anything else (401, 404, 5xx, ...) is fatal for the run
            resp.raise_for_status()
            body: dict[str, Any] = await resp.json()

        for error in body.get("errors") or []:
            logger.error(f"GraphQL error: {error.get('message', error)}")

        data = body.get("data")
        if not data:
            raise NoData()

        rate_limit = data.get("rateLimit") or {}
        if self._limiter is not None and "cost" in rate_limit:
            await self._limiter.settle(estimated=PRE_ACQUIRE_COST, actual=rate_limit["cost"])
        return data

    async def fetch_page(
        self,
        resource: Resource,
        *,
        owner: str | None = None,
        name: str | None = None,
        cursor: str | None = None,
        page_size: int = 100,
        direction: Direction = Direction.FORWARD,
    ) -> Page:
        """Fetch one page of ``resource`` starting at ``cursor``.

        ``next_cursor`` always continues in ``direction``; ``has_more`` tells
        whether there is such a page (hasNextPage forward, hasPreviousPage
        backward).
        """
        variables: dict[str, Any] = {"first": None, "after": None, "last": None, "before": None}
        if direction is Direction.FORWARD:
            variables.update(first=page_size, after=cursor)
        else:
            variables.update(last=page_size, before=cursor)

        login = None
        if resource is Resource.OWNED_REPOSITORIES:
            data = await self._post(OWNED_REPOSITORIES_QUERY, variables)
            viewer = _require(data, "viewer")
            login = viewer["login"]
            connection = _require(viewer, "repositories")
            items = [_parse_repository(n) for n in _require(connection, "nodes") if n]
        elif resource is Resource.STARGAZERS:
            data = await self._post(STARGAZERS_QUERY, {"owner": owner, "name": name, **variables})
            connection = _require(_require(data, "repository"), "stargazers")
            items = [_parse_stargazer(e) for e in _require(connection, "edges") if e]
        elif resource is Resource.COMMIT_HISTORY:
            data = await self._post(COMMIT_HISTORY_QUERY, {"owner": owner, "name": name, **variables})
            branch = _require(_require(data, "repository"), "defaultBranchRef")
            target = _require(branch, "target")
            if target.get("__typename") != "Commit":
                raise UnexpectedNode("target", target.get("__typename"))
            connection = _require(target, "history")
            items = [_parse_commit(n) for n in _require(connection, "nodes") if n]
        else:
            raise ValueError(f"Unknown resource: {resource}")

        info = _require(connection, "pageInfo")
        if direction is Direction.FORWARD:
            has_more, next_cursor, previous_cursor = (
                info["hasNextPage"], info["endCursor"], info["startCursor"]
            )
        else:
            has_more, next_cursor, previous_cursor = (
                info["hasPreviousPage"], info["startCursor"], info["endCursor"]
            )

        rate_limit = data.get("rateLimit") or {}
        logger.debug(
            f"Fetched {len(items)} {resource.value} ({direction.value}, cursor={cursor}) "
            f"| Cost={rate_limit.get('cost')} Remaining={rate_limit.get('remaining')}"
        )
        return Page(
            items=items,
            has_more=has_more,
            next_cursor=next_cursor,
            previous_cursor=previous_cursor,
            total_count=connection.get("totalCount"),
            login=login,
            cost=rate_limit.get("cost", PRE_ACQUIRE_COST),
            remaining=rate_limit.get("remaining"),
        )
