from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url


class Settings(BaseSettings):
    """App-wide configuration pulled from environment variables or .env."""

    # Database (SQLite or PostgreSQL; PostgreSQL via postgresql+psycopg://)
    database_url: str = "sqlite:///starhistory.db"

    # GitHub
    github_token: str | None = None
    github_graphql_endpoint: str = "https://api.github.com/graphql"

    # Sync
    stargazers_page_size: int = 20
    first_commits_sample: int = 5
    # Integer-division majority check kept for datasets classified by older runs
    legacy_majority_check: bool = False

    # Charts
    min_language_stars: int = 10
    language_colors_path: Path | None = None

    # Rate‑limit bucket (GitHub secondary limit is 2000 points/minute)
    bucket_capacity: int = 200
    bucket_refill_per_min: int = 2000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def database_location(self) -> str:
        """Human readable store location, without credentials."""
        url = make_url(self.database_url)
        if url.get_backend_name() == "sqlite":
            return str(Path(url.database).resolve()) if url.database else ":memory:"
        return url.render_as_string(hide_password=True)


@lru_cache()
def get_settings() -> Settings:  # pragma: no cover
    return Settings()
