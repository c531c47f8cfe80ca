import logging
from collections.abc import Iterable

from starhistory.api import CommitNode, Direction, GithubClient, RepositoryNode, Resource
from starhistory.db import Store

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 5
COMMIT_PAGE_SIZE = 100


async def first_commits(
    gh: GithubClient,
    owner: str,
    name: str,
    limit: int = DEFAULT_SAMPLE_SIZE,
    page_size: int = COMMIT_PAGE_SIZE,
) -> list[CommitNode]:
    """Sample up to ``limit`` of the earliest commits on the default branch.

    History is only exposed newest first, so this walks forward to the last
    page and takes nodes from there. When the last page is short, the
    remainder comes from the page starting at the start cursor saved on the
    previous iteration.
    """
    cursor = None
    previous_cursor = None
    commits: list[CommitNode] = []

    while True:
        page = await gh.fetch_page(
            Resource.COMMIT_HISTORY,
            owner=owner,
            name=name,
            cursor=cursor,
            page_size=page_size,
            direction=Direction.FORWARD,
        )
        if page.has_more:
            previous_cursor = page.previous_cursor
            cursor = page.next_cursor
            continue

        commits.extend(page.items[:limit])

        if len(commits) < limit and previous_cursor is not None:
            previous = await gh.fetch_page(
                Resource.COMMIT_HISTORY,
                owner=owner,
                name=name,
                cursor=previous_cursor,
                page_size=page_size,
                direction=Direction.FORWARD,
            )
            commits.extend(previous.items[: limit - len(commits)])

        return commits


def is_majority(matching: int, sample: int, *, integer_division: bool = False) -> bool:
    """Whether ``matching`` is more than half of ``sample``.

    ``integer_division`` reproduces ``matching // sample > 1 // 2``, which is
    only true when every sampled commit matches.
    """
    if sample == 0:
        return False
    if integer_division:
        return (matching // sample) > (1 // 2)
    return matching * 2 > sample


def authored_by(login: str, commit: CommitNode) -> bool:
    return commit.author_login is not None and commit.author_login == login


class OriginalityClassifier:
    """Fills in missing originality flags; existing flags are never revisited."""

    def __init__(
        self,
        store: Store,
        gh: GithubClient,
        login: str,
        *,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        legacy_majority_check: bool = False,
    ):
        self.store = store
        self.gh = gh
        self.login = login
        self.sample_size = sample_size
        self.legacy_majority_check = legacy_majority_check

    async def is_original(self, owner: str, name: str) -> bool:
        if owner == self.login:
            return True

        commits = await first_commits(self.gh, owner, name, self.sample_size)
        same_login_count = sum(1 for c in commits if authored_by(self.login, c))
        return is_majority(
            same_login_count, len(commits), integer_division=self.legacy_majority_check
        )

    async def classify(self, repositories: Iterable[RepositoryNode]) -> int:
        """Classify every repository without a flag. Returns how many were written."""
        known = self.store.known_originality_keys()
        written = 0

        for repo in repositories:
            key = (repo.owner, repo.name)
            if key in known:
                continue

            original = await self.is_original(repo.owner, repo.name)
            logger.info(f"{repo.owner}/{repo.name}: {'original' if original else 'not original'}")

            self.store.insert_originality_flag(repo.owner, repo.name, original)
            known.add(key)
            written += 1

        return written
