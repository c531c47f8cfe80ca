import logging

from pydantic import BaseModel

from starhistory.api import Direction, GithubClient, RepositoryNode, Resource
from starhistory.db import Store
from .backfill import STARGAZERS_PAGE_SIZE, StargazerBackfill
from .classifier import DEFAULT_SAMPLE_SIZE, OriginalityClassifier

logger = logging.getLogger(__name__)

REPOSITORY_PAGE_SIZE = 100


class SyncReport(BaseModel):
    login: str
    repositories: int
    classified: int
    backfilled: int
    events: int


async def fetch_starred_repositories(
    gh: GithubClient, page_size: int = REPOSITORY_PAGE_SIZE
) -> tuple[str, list[RepositoryNode]]:
    """Return the viewer login and every owned repository with at least one star.

    Repositories come back sorted by stargazers, so the first zero-star
    repository ends the listing.
    """
    result: list[RepositoryNode] = []
    cursor = None

    while True:
        page = await gh.fetch_page(
            Resource.OWNED_REPOSITORIES,
            cursor=cursor,
            page_size=page_size,
            direction=Direction.FORWARD,
        )
        starred = []
        for repo in page.items:
            if repo.stargazer_count <= 0:
                break
            starred.append(repo)
        result.extend(starred)

        if not page.has_more or len(starred) != len(page.items):
            return page.login, result
        cursor = page.next_cursor


class StarSync:
    """One pipeline run: list, snapshot, classify, backfill."""

    def __init__(
        self,
        store: Store,
        gh: GithubClient,
        *,
        stargazers_page_size: int = STARGAZERS_PAGE_SIZE,
        first_commits_sample: int = DEFAULT_SAMPLE_SIZE,
        legacy_majority_check: bool = False,
    ):
        self.store = store
        self.gh = gh
        self.stargazers_page_size = stargazers_page_size
        self.first_commits_sample = first_commits_sample
        self.legacy_majority_check = legacy_majority_check

    async def run(self) -> SyncReport:
        login, repositories = await fetch_starred_repositories(self.gh)
        logger.info(f"Fetched {len(repositories)} starred repositories for {login}")

        self.store.replace_all_snapshots(
            (r.owner, r.name, r.stargazer_count) for r in repositories
        )
        self.store.replace_all_languages(
            (r.owner, r.name, r.primary_language) for r in repositories
        )

        classifier = OriginalityClassifier(
            self.store,
            self.gh,
            login,
            sample_size=self.first_commits_sample,
            legacy_majority_check=self.legacy_majority_check,
        )
        classified = await classifier.classify(repositories)

        diffs = self.store.compute_growth_diffs()
        logger.info(f"{len(diffs)} repositories have new stargazers")
        backfill = StargazerBackfill(self.store, self.gh, page_size=self.stargazers_page_size)
        backfilled, events = await backfill.run(diffs)

        report = SyncReport(
            login=login,
            repositories=len(repositories),
            classified=classified,
            backfilled=backfilled,
            events=events,
        )
        logger.info(
            f"Finished updating the database: {report.repositories} repositories, "
            f"{report.classified} classified, {report.events} stargazers added "
            f"across {report.backfilled} repositories"
        )
        return report
