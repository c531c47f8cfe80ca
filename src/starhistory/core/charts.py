"""Star history charts.

Renderers are plain functions from an ordered series to an image file; the
``render_*`` helpers pull the series out of the store first.
"""
import json
import logging
from collections.abc import Mapping, Sequence
from datetime import date, timedelta
from importlib import resources
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.dates as mdates  # noqa: E402
import matplotlib.pyplot as plt  # noqa: E402

from starhistory.db import Store  # noqa: E402

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#ff0000"
FONT_FAMILY = "sans-serif"
CHART_CAPTION_FONT_SIZE = 14
LABEL_FONT_SIZE = 12
FIGURE_SIZE = (5.0, 2.5)  # inches
DPI = 100
Y_HEADROOM = 50


class NoMeaningfulData(Exception):
    """Fewer than two points: there is nothing to plot."""

    def __init__(self):
        super().__init__("No meaningful data")


def load_language_colors(path: str | Path | None = None) -> dict[str, str]:
    """Read a language -> hex color table.

    Accepts the linguist layout ``{"Rust": {"color": "#dea584"}}`` as well as a
    flat ``{"Rust": "#dea584"}`` mapping. Languages without a color are left
    out. Defaults to the table bundled with the package.
    """
    if path is None:
        raw = resources.files("starhistory").joinpath("colors.json").read_text(encoding="utf-8")
    else:
        raw = Path(path).read_text(encoding="utf-8")

    colors = {}
    for language, entry in json.loads(raw).items():
        color = entry.get("color") if isinstance(entry, dict) else entry
        if color:
            colors[language] = color
    return colors


def _new_chart(caption: str, from_date: date, to_date: date, max_value: int):
    fig, ax = plt.subplots(figsize=FIGURE_SIZE, dpi=DPI)
    fig.patch.set_facecolor("white")
    ax.set_title(caption, fontfamily=FONT_FAMILY, fontsize=CHART_CAPTION_FONT_SIZE)
    ax.set_xlim(from_date - timedelta(days=1), to_date + timedelta(days=1))
    ax.set_ylim(0, max_value + Y_HEADROOM)
    ax.grid(axis="y", alpha=0.3)
    locator = mdates.AutoDateLocator(maxticks=5)
    ax.xaxis.set_major_locator(locator)
    ax.xaxis.set_major_formatter(mdates.ConciseDateFormatter(locator))
    return fig, ax


def _save(fig, path: str | Path) -> None:
    try:
        fig.tight_layout()
        fig.savefig(path)
    finally:
        plt.close(fig)


def draw_star_history_by_language(
    series: Sequence[tuple[date, str, int]],
    path: str | Path,
    colors: Mapping[str, str],
) -> None:
    """One cumulative line per language; ``series`` must be date ascending."""
    max_value = max(n for _, _, n in series)
    fig, ax = _new_chart(
        "Number of stargazers by language", series[0][0], series[-1][0], max_value
    )

    languages = list(dict.fromkeys(language for _, language, _ in series))
    for language in languages:
        color = colors.get(language, DEFAULT_COLOR)
        points = [(d, n) for d, lang, n in series if lang == language]
        xs, ys = zip(*points)
        ax.plot(xs, ys, color=color, linewidth=1, label=language)

        x, y = points[len(points) // 2]
        ax.annotate(
            language,
            (x, y),
            xytext=(-10, 15),
            textcoords="offset points",
            ha="center",
            color=color,
            fontfamily=FONT_FAMILY,
            fontsize=LABEL_FONT_SIZE,
        )

    ax.legend(loc="upper left", facecolor="white")
    _save(fig, path)


def draw_total_star_history(series: Sequence[tuple[date, int]], path: str | Path) -> None:
    fig, ax = _new_chart(
        "Total number of stargazers", series[0][0], series[-1][0], series[-1][1]
    )
    xs, ys = zip(*series)
    ax.plot(xs, ys, color="black")
    _save(fig, path)


def render_star_history_by_language(
    store: Store,
    path: str | Path,
    colors: Mapping[str, str],
    min_total_stars: int = 10,
) -> None:
    series = store.collect_language_time_series(min_total_stars)
    if len(series) < 2:
        raise NoMeaningfulData()

    draw_star_history_by_language(series, path, colors)
    logger.info(f"Saved the image to {path}")


def render_total_star_history(store: Store, path: str | Path) -> None:
    series = store.collect_total_time_series()
    if len(series) < 2:
        raise NoMeaningfulData()

    draw_total_star_history(series, path)
    logger.info(f"Saved the image to {path}")
