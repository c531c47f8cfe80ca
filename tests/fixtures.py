"""In-memory stand-in for the GitHub GraphQL pager.

Cursors are item indexes rendered as strings, which is enough to exercise
forward and backward paging the way GitHub's connections behave.
"""
from datetime import datetime, timedelta, timezone

from starhistory.api import (
    CommitNode,
    Direction,
    EmptyNode,
    Page,
    RepositoryNode,
    Resource,
    StargazerEdge,
)

T0 = datetime(2024, 9, 21, 11, 8, 1, tzinfo=timezone.utc)


def make_stargazers(count: int, start: int = 0, *, per_day: int = 1) -> list[StargazerEdge]:
    """``count`` distinct stargazers in chronological order."""
    return [
        StargazerEdge(
            login=f"user{i}",
            starred_at=T0 + timedelta(days=i // per_day, minutes=i),
        )
        for i in range(start, start + count)
    ]


def make_commits(*logins: str | None) -> list[CommitNode]:
    """Commits in the order GitHub returns them (newest first)."""
    return [CommitNode(author_login=login) for login in logins]


def _forward(items: list, cursor: str | None, size: int):
    start = int(cursor) + 1 if cursor is not None else 0
    chunk = items[start:start + size]
    end = start + len(chunk) - 1
    return (
        chunk,
        start + size < len(items),
        str(end) if chunk else None,
        str(start) if chunk else None,
    )


def _backward(items: list, cursor: str | None, size: int):
    end = int(cursor) if cursor is not None else len(items)
    start = max(end - size, 0)
    chunk = items[start:end]
    return (
        chunk,
        start > 0,
        str(start) if chunk else None,
        str(end - 1) if chunk else None,
    )


class FakeGithub:
    def __init__(
        self,
        login: str = "octocat",
        repositories: list[RepositoryNode] | None = None,
        stargazers: dict[tuple[str, str], list[StargazerEdge]] | None = None,
        commits: dict[tuple[str, str], list[CommitNode]] | None = None,
    ):
        self.login = login
        self.repositories = repositories or []
        self.stargazers = stargazers or {}
        self.commits = commits or {}
        self.calls: list[tuple] = []
        # called with (resource, key) after each page is served
        self.after_fetch = None

    def calls_for(self, resource: Resource) -> list[tuple]:
        return [c for c in self.calls if c[0] is resource]

    async def fetch_page(
        self,
        resource: Resource,
        *,
        owner=None,
        name=None,
        cursor=None,
        page_size=100,
        direction=Direction.FORWARD,
    ) -> Page:
        self.calls.append((resource, owner, name, cursor, page_size, direction))
        key = (owner, name)

        if resource is Resource.OWNED_REPOSITORIES:
            items, login = self.repositories, self.login
        elif resource is Resource.STARGAZERS:
            if key not in self.stargazers:
                raise EmptyNode("repository")
            items, login = self.stargazers[key], None
        else:
            if key not in self.commits:
                raise EmptyNode("repository")
            items, login = self.commits[key], None

        pager = _forward if direction is Direction.FORWARD else _backward
        chunk, has_more, next_cursor, previous_cursor = pager(items, cursor, page_size)
        page = Page(
            items=list(chunk),
            has_more=has_more,
            next_cursor=next_cursor,
            previous_cursor=previous_cursor,
            total_count=len(items),
            login=login,
        )
        if self.after_fetch is not None:
            self.after_fetch(resource, key)
        return page
