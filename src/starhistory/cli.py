import asyncio
import logging
from enum import Enum
from pathlib import Path

import typer

from starhistory.api import GithubClient, RateLimiter
from starhistory.config import Settings, get_settings
from starhistory.core.charts import (
    NoMeaningfulData,
    load_language_colors,
    render_star_history_by_language,
    render_total_star_history,
)
from starhistory.core.sync import StarSync
from starhistory.db import Store

app = typer.Typer(help="Star history for your GitHub profile.")
logger = logging.getLogger(__name__)


class ChartType(str, Enum):
    language = "language"
    total = "total"


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output.")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def open_store(settings: Settings) -> Store:
    logger.info(f"Opening database {settings.database_location}")
    return Store.from_url(settings.database_url)


async def _update(settings: Settings, store: Store):
    limiter = RateLimiter(
        capacity=settings.bucket_capacity, refill_per_min=settings.bucket_refill_per_min
    )
    async with GithubClient(
        settings.github_token,
        endpoint=settings.github_graphql_endpoint,
        limiter=limiter,
    ) as gh:
        return await StarSync(
            store,
            gh,
            stargazers_page_size=settings.stargazers_page_size,
            first_commits_sample=settings.first_commits_sample,
            legacy_majority_check=settings.legacy_majority_check,
        ).run()


@app.command()
def update():
    """Update the local database specified in the config."""
    settings = get_settings()
    if not settings.github_token:
        typer.echo("GITHUB_TOKEN is not set in the environment.", err=True)
        raise typer.Exit(code=1)

    store = open_store(settings)
    try:
        store.create_schema()
        asyncio.run(_update(settings, store))
    finally:
        store.dispose()


@app.command()
def chart(
    path: Path = typer.Argument(..., help="Image file to write (.svg, .png, ...)."),
    chart_type: ChartType = typer.Option(ChartType.language, "--type", help="Set the history chart type."),
):
    """Render a star history chart to the given file."""
    settings = get_settings()
    store = open_store(settings)
    try:
        store.create_schema()
        if chart_type is ChartType.language:
            colors = load_language_colors(settings.language_colors_path)
            render_star_history_by_language(
                store, path, colors, min_total_stars=settings.min_language_stars
            )
        else:
            render_total_star_history(store, path)
    except NoMeaningfulData as e:
        typer.echo(f"{e}: not enough stargazer history to draw a chart.", err=True)
        raise typer.Exit(code=1)
    finally:
        store.dispose()


@app.command()
def config():
    """Print the config."""
    typer.echo(f"Database: {get_settings().database_location}")


if __name__ == "__main__":
    app()
