"""High‑level, sync helpers around SQLAlchemy session.

These keep SQL in **one place** so the pipeline stages only ever talk to a
:class:`Store` handle that is passed to them explicitly.
"""
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict
from sqlalchemy import and_, delete, func, insert, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from .engine import make_engine, make_session_factory
from .models import (
    TOTAL_STARS_BY_LANGUAGE_DDL,
    Base,
    OriginalStatus,
    RepositoryLanguage,
    Stargazer,
    StarCount,
    total_stars_by_language,
)

logger = logging.getLogger(__name__)

# Dialects with INSERT .. ON CONFLICT DO NOTHING support
_INSERT_DIALECTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class StarGrowthDiff(BaseModel):
    """A repository whose snapshot total is ahead of the events on file."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    new_count: int
    old_count: int


def _as_date(value: date | str) -> date:
    # SQLite hands back date() results as ISO strings
    if isinstance(value, str):
        return date.fromisoformat(value)
    if isinstance(value, datetime):
        return value.date()
    return value


class Store:
    """Analytical store for star counts, languages, originality and stargazers."""

    def __init__(self, engine: Engine):
        if engine.dialect.name not in _INSERT_DIALECTS:
            raise ValueError(
                f"Unsupported database dialect: {engine.dialect.name} "
                f"(expected one of {sorted(_INSERT_DIALECTS)})"
            )
        self.engine = engine
        self._sessions = make_session_factory(engine)

    @classmethod
    def from_url(cls, url: str) -> "Store":
        return cls(make_engine(url))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create missing tables and rebuild the derived view."""
        Base.metadata.create_all(bind=self.engine)
        with self.session_scope() as s:
            s.execute(text("DROP VIEW IF EXISTS total_stars_by_language"))
            s.execute(text(TOTAL_STARS_BY_LANGUAGE_DDL))

    def dispose(self) -> None:
        self.engine.dispose()

    # --- star counts -------------------------------------------------------

    def replace_all_snapshots(self, records: Iterable[tuple[str, str, int]]) -> None:
        """Replace every (owner, name, stargazer_count) row in one transaction."""
        rows = [{"owner": o, "name": n, "stargazers": c} for o, n, c in records]
        with self.session_scope() as s:
            s.execute(delete(StarCount))
            if rows:
                s.execute(insert(StarCount), rows)

    def upsert_snapshot(self, owner: str, name: str, count: int) -> None:
        with self.session_scope() as s:
            s.execute(delete(StarCount).where(StarCount.owner == owner, StarCount.name == name))
            s.execute(insert(StarCount).values(owner=owner, name=name, stargazers=count))

    # --- languages ---------------------------------------------------------

    def replace_all_languages(self, records: Iterable[tuple[str, str, str | None]]) -> None:
        """Replace every (owner, name, primary_language) row in one transaction."""
        rows = [{"owner": o, "name": n, "primary_language": lang} for o, n, lang in records]
        with self.session_scope() as s:
            s.execute(delete(RepositoryLanguage))
            if rows:
                s.execute(insert(RepositoryLanguage), rows)

    # --- originality -------------------------------------------------------

    def known_originality_keys(self) -> set[tuple[str, str]]:
        with self.session_scope() as s:
            rows = s.execute(select(OriginalStatus.owner, OriginalStatus.name)).all()
        return {(owner, name) for owner, name in rows}

    def insert_originality_flag(self, owner: str, name: str, is_original: bool) -> None:
        """Plain insert: callers check known_originality_keys() first."""
        with self.session_scope() as s:
            s.execute(insert(OriginalStatus).values(owner=owner, name=name, original=is_original))

    # --- stargazers --------------------------------------------------------

    def compute_growth_diffs(self) -> list[StarGrowthDiff]:
        """Original repositories whose snapshot total exceeds the events on file.

        ``new_count > old_count`` rather than ``<>``: the total drops below
        the logged events whenever users remove their stars.
        """
        old_count = func.count(Stargazer.starred_by)
        stmt = (
            select(
                StarCount.owner,
                StarCount.name,
                StarCount.stargazers.label("new_count"),
                old_count.label("old_count"),
            )
            .join(
                OriginalStatus,
                and_(
                    StarCount.owner == OriginalStatus.owner,
                    StarCount.name == OriginalStatus.name,
                    OriginalStatus.original.is_(True),
                ),
            )
            .outerjoin(
                Stargazer,
                and_(StarCount.owner == Stargazer.owner, StarCount.name == Stargazer.name),
            )
            .group_by(StarCount.owner, StarCount.name, StarCount.stargazers)
            .having(StarCount.stargazers > old_count)
            .order_by(StarCount.owner, StarCount.name)
        )
        with self.session_scope() as s:
            rows = s.execute(stmt).all()
        return [
            StarGrowthDiff(owner=r.owner, name=r.name, new_count=r.new_count, old_count=r.old_count)
            for r in rows
        ]

    def _insert_ignoring_duplicates(self):
        """INSERT .. ON CONFLICT DO NOTHING for the stargazer log."""
        insert_for = _INSERT_DIALECTS[self.engine.dialect.name]
        return insert_for(Stargazer.__table__).on_conflict_do_nothing(
            index_elements=["owner", "name", "starred_by", "starred_at"]
        )

    def append_stargazer_events(
        self, owner: str, name: str, events: Iterable[tuple[datetime, str]]
    ) -> int:
        """Append (starred_at, starred_by) events for one repository.

        Backfill produces events newest first, so the whole batch commits or
        none of it does. Events already on file are skipped. Returns the
        number of events actually written.
        """
        rows = [
            {"owner": owner, "name": name, "starred_at": at, "starred_by": by}
            for at, by in events
        ]
        if not rows:
            return 0
        count = select(func.count()).select_from(Stargazer).where(
            Stargazer.owner == owner, Stargazer.name == name
        )
        with self.session_scope() as s:
            before = s.execute(count).scalar_one()
            s.execute(self._insert_ignoring_duplicates(), rows)
            after = s.execute(count).scalar_one()
        return after - before

    def count_stargazer_events(self, owner: str, name: str) -> int:
        stmt = select(func.count()).select_from(Stargazer).where(
            Stargazer.owner == owner, Stargazer.name == name
        )
        with self.session_scope() as s:
            return s.execute(stmt).scalar_one()

    # --- time series -------------------------------------------------------

    def collect_language_time_series(self, min_total_stars: int) -> list[tuple[date, str, int]]:
        """Running star total per language and day, date ascending.

        Only languages whose current total over original repositories reaches
        ``min_total_stars`` are included.
        """
        day = func.date(Stargazer.starred_at)
        qualifying = select(total_stars_by_language.c.primary_language).where(
            total_stars_by_language.c.stargazers >= min_total_stars
        )
        activities = (
            select(
                RepositoryLanguage.primary_language.label("language"),
                day.label("day"),
                func.count().label("count"),
            )
            .join(
                Stargazer,
                and_(
                    RepositoryLanguage.owner == Stargazer.owner,
                    RepositoryLanguage.name == Stargazer.name,
                ),
            )
            .where(
                RepositoryLanguage.primary_language.is_not(None),
                RepositoryLanguage.primary_language.in_(qualifying),
            )
            .group_by(RepositoryLanguage.primary_language, day)
            .cte("activities")
        )
        accum = func.sum(activities.c.count).over(
            partition_by=activities.c.language,
            order_by=activities.c.day,
            rows=(None, 0),
        )
        stmt = select(activities.c.day, activities.c.language, accum.label("accum")).order_by(
            activities.c.day, activities.c.language
        )
        with self.session_scope() as s:
            rows = s.execute(stmt).all()
        return [(_as_date(d), language, int(total)) for d, language, total in rows]

    def collect_total_time_series(self) -> list[tuple[date, int]]:
        """Running count of all stargazer events per day, date ascending."""
        day = func.date(Stargazer.starred_at)
        daily = (
            select(day.label("day"), func.count().label("count"))
            .group_by(day)
            .cte("daily")
        )
        accum = func.sum(daily.c.count).over(order_by=daily.c.day, rows=(None, 0))
        stmt = select(daily.c.day, accum.label("accum")).order_by(daily.c.day)
        with self.session_scope() as s:
            rows = s.execute(stmt).all()
        return [(_as_date(d), int(total)) for d, total in rows]
