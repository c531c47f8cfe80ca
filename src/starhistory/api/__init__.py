from .github_client import (
    CommitNode,
    Direction,
    EmptyNode,
    GithubAbuseRateLimitError,
    GithubClient,
    GithubResponseError,
    NoData,
    Page,
    RepositoryNode,
    Resource,
    StargazerEdge,
    UnexpectedNode,
)
from .rate_limiting import RateLimiter
