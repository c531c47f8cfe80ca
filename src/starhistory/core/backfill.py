import logging
from collections.abc import Iterable

from starhistory.api import Direction, GithubClient, Resource, StargazerEdge
from starhistory.db import StarGrowthDiff, Store

logger = logging.getLogger(__name__)

STARGAZERS_PAGE_SIZE = 20
# Extra items per page to absorb stars added between the count and the fetch
CHURN_BUFFER = 5


async def stargazers_after_count(
    gh: GithubClient,
    owner: str,
    name: str,
    after_count: int,
    expected_total_count: int,
    page_size: int = STARGAZERS_PAGE_SIZE,
) -> tuple[int, list[StargazerEdge]]:
    """Fetch the stargazers added after the first ``after_count`` ones.

    Pages backward from the most recent star. Every page reports the current
    total, and the latest report wins. Returns that total together with the
    new edges, newest first.
    """
    result: list[StargazerEdge] = []
    cursor = None
    accum_count = after_count
    total_count = expected_total_count

    while True:
        count = max(min(total_count - accum_count + CHURN_BUFFER, page_size), 1)
        page = await gh.fetch_page(
            Resource.STARGAZERS,
            owner=owner,
            name=name,
            cursor=cursor,
            page_size=count,
            direction=Direction.BACKWARD,
        )
        if page.total_count is not None:
            total_count = page.total_count

        # edges come oldest first within a page
        for edge in reversed(page.items):
            if accum_count >= total_count:
                break
            result.append(edge)
            accum_count += 1

        # an empty page has no cursor to continue from
        if not page.has_more or accum_count >= total_count or page.next_cursor is None:
            break

        cursor = page.next_cursor

    return total_count, result


class StargazerBackfill:
    """Appends the stargazer events missing for each repository in the work queue."""

    def __init__(self, store: Store, gh: GithubClient, *, page_size: int = STARGAZERS_PAGE_SIZE):
        self.store = store
        self.gh = gh
        self.page_size = page_size

    async def backfill(self, diff: StarGrowthDiff) -> int:
        logger.info(
            f"{diff.owner}/{diff.name}: fetching stargazers "
            f"({diff.old_count} on file, {diff.new_count} starred)"
        )
        new_total_count, edges = await stargazers_after_count(
            self.gh,
            diff.owner,
            diff.name,
            diff.old_count,
            diff.new_count,
            self.page_size,
        )

        appended = self.store.append_stargazer_events(
            diff.owner, diff.name, ((e.starred_at, e.login) for e in edges)
        )

        if new_total_count > diff.new_count:
            self.store.upsert_snapshot(diff.owner, diff.name, new_total_count)
            logger.info(
                f"{diff.owner}/{diff.name}: total stargazer count has been updated "
                f"(old={diff.new_count}, new={new_total_count})"
            )
        return appended

    async def run(self, diffs: Iterable[StarGrowthDiff]) -> tuple[int, int]:
        """Backfill every diff in order. Returns (repositories, events)."""
        repositories = events = 0
        for diff in diffs:
            events += await self.backfill(diff)
            repositories += 1
        return repositories, events
