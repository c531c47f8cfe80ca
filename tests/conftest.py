import pytest
from starhistory.config import get_settings
from starhistory.db import Base, Store


@pytest.fixture()
def store(tmp_path):
    # A throwaway SQLite file per test keeps every test on an empty schema
    store = Store.from_url(f"sqlite:///{tmp_path / 'stars.db'}")
    store.create_schema()
    yield store
    Base.metadata.drop_all(bind=store.engine)
    store.dispose()


@pytest.fixture()
def settings_env(monkeypatch, tmp_path):
    """Point the cached settings at a temporary database."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()
