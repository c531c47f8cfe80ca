import pytest
from fixtures import FakeGithub, make_commits, make_stargazers

from starhistory.api import EmptyNode, RepositoryNode, Resource
from starhistory.core.sync import StarSync, fetch_starred_repositories


def repo(owner, name, stars, language=None):
    return RepositoryNode(owner=owner, name=name, stargazer_count=stars, primary_language=language)


@pytest.mark.asyncio
async def test_fetch_starred_repositories_pages_forward():
    repositories = [repo("octocat", f"r{i}", 100 - i) for i in range(5)]
    gh = FakeGithub(repositories=repositories)

    login, fetched = await fetch_starred_repositories(gh, page_size=2)

    assert login == "octocat"
    assert fetched == repositories
    assert [c[3] for c in gh.calls] == [None, "1", "3"]


@pytest.mark.asyncio
async def test_fetch_starred_repositories_stops_at_zero_stars():
    repositories = [repo("octocat", "a", 9), repo("octocat", "b", 4), repo("octocat", "c", 2),
                    repo("octocat", "d", 0), repo("octocat", "e", 0), repo("octocat", "f", 0)]
    gh = FakeGithub(repositories=repositories)

    _, fetched = await fetch_starred_repositories(gh, page_size=2)

    assert [r.name for r in fetched] == ["a", "b", "c"]
    # the page holding "d" ends the listing
    assert len(gh.calls) == 2


def _world():
    mine = make_stargazers(6)
    org_tool = make_stargazers(3, start=50)
    gh = FakeGithub(
        login="octocat",
        repositories=[
            repo("octocat", "mine", 6, "Rust"),
            repo("acme", "tool", 3, "Python"),
            repo("acme", "fork", 2, "Go"),
        ],
        stargazers={("octocat", "mine"): mine, ("acme", "tool"): org_tool},
        commits={
            ("acme", "tool"): make_commits("octocat", "octocat", "bob"),
            ("acme", "fork"): make_commits("alice", "bob", "octocat"),
        },
    )
    return gh, mine


@pytest.mark.asyncio
async def test_run_end_to_end(store):
    gh, _ = _world()

    report = await StarSync(store, gh).run()

    assert report.login == "octocat"
    assert (report.repositories, report.classified) == (3, 3)
    assert (report.backfilled, report.events) == (2, 9)
    assert store.count_stargazer_events("octocat", "mine") == 6
    assert store.count_stargazer_events("acme", "tool") == 3
    assert store.count_stargazer_events("acme", "fork") == 0
    assert store.compute_growth_diffs() == []
    assert gh.calls_for(Resource.STARGAZERS)
    assert {c[1:3] for c in gh.calls_for(Resource.COMMIT_HISTORY)} == {
        ("acme", "tool"), ("acme", "fork"),
    }


@pytest.mark.asyncio
async def test_second_run_only_fetches_new_stars(store):
    gh, mine = _world()
    await StarSync(store, gh).run()

    mine.extend(make_stargazers(2, start=6))
    gh.repositories[0] = repo("octocat", "mine", 8, "Rust")
    gh.calls.clear()

    report = await StarSync(store, gh).run()

    assert report.classified == 0
    assert (report.backfilled, report.events) == (1, 2)
    assert gh.calls_for(Resource.COMMIT_HISTORY) == []
    assert store.count_stargazer_events("octocat", "mine") == 8
    assert store.count_stargazer_events("acme", "tool") == 3


@pytest.mark.asyncio
async def test_missing_repository_aborts_run(store):
    gh = FakeGithub(
        login="octocat",
        repositories=[repo("octocat", "gone", 4)],
    )

    with pytest.raises(EmptyNode):
        await StarSync(store, gh).run()

    # steps before the failure stay committed
    assert store.known_originality_keys() == {("octocat", "gone")}
    assert store.count_stargazer_events("octocat", "gone") == 0


@pytest.mark.asyncio
async def test_language_series_after_sync(store):
    gh, _ = _world()
    await StarSync(store, gh).run()

    languages = {lang for _, lang, _ in store.collect_language_time_series(3)}

    # Go belongs to a non-original repository and has no events
    assert languages == {"Rust", "Python"}
